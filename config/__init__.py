"""Configuration package for the assessment engine."""
from .registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, bind_model, get_model, is_bound
from .routes import AppConfig, LlmRoute, load_config, resolve_registry
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "load_config",
    "resolve_registry",
    "ANSWER_QUALITY_KEY",
    "SCENARIO_SCORER_KEY",
    "bind_model",
    "get_model",
    "is_bound",
    "Settings",
    "settings",
]
