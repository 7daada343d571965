from pathlib import Path

import pytest

from agents.bindings import SCHEMAS, bind_default_models
from config.registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, bind_model, get_model, is_bound
from config.routes import AppConfig, load_config, resolve_registry
from config.settings import Settings

CONFIG_PATH = Path(__file__).resolve().parents[2] / "app_config.json"


def test_settings_defaults():
    settings = Settings(_env_file=None)
    assert settings.DB_PATH.endswith(".db")
    assert settings.MAX_FOLLOW_UPS == 2
    assert settings.RESUME_WINDOW_HOURS == 24.0
    assert settings.PARTIAL_RETENTION_DAYS == 7
    assert settings.MEDIA_INLINE_LIMIT_BYTES == 500 * 1024


def test_settings_reject_negative_follow_up_limit():
    with pytest.raises(ValueError):
        Settings(_env_file=None, MAX_FOLLOW_UPS=-1)


def test_registry_bind_and_retrieve():
    marker = object()
    bind_model(ANSWER_QUALITY_KEY, lambda *_: marker)
    assert is_bound(ANSWER_QUALITY_KEY)
    assert get_model(ANSWER_QUALITY_KEY)() is marker


def test_registry_missing_key_raises():
    with pytest.raises(KeyError):
        get_model("models.unknown")


def test_shipped_config_resolves_both_keys():
    cfg = load_config(CONFIG_PATH)
    resolved = resolve_registry(cfg, SCHEMAS)
    assert set(resolved) == {ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY}
    assert resolved[SCENARIO_SCORER_KEY][0].name == "scorer"


def test_resolve_registry_reports_missing_route():
    cfg = AppConfig(llm_routes={}, registry={ANSWER_QUALITY_KEY: "nowhere", SCENARIO_SCORER_KEY: "nowhere"})
    with pytest.raises(KeyError):
        resolve_registry(cfg, SCHEMAS)


def test_bind_default_models_replaces_registry_entries():
    bound = bind_default_models(load_config(CONFIG_PATH))
    assert bound[ANSWER_QUALITY_KEY].name == "evaluator"
    assert callable(get_model(SCENARIO_SCORER_KEY))
