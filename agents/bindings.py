from __future__ import annotations  # Bind registry keys to configured scoring-service routes

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx

from config.registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, bind_model
from config.routes import AppConfig, LlmRoute, load_config, resolve_registry
from llm_gateway import chat

from .prompts import answer_quality_messages, scenario_scoring_messages
from .types import AnswerQualityInput, AnswerQualityVerdict, ScenarioAnalysis, ScenarioScoreRequest

logger = logging.getLogger(__name__)

SCHEMAS = {
    ANSWER_QUALITY_KEY: AnswerQualityVerdict,
    SCENARIO_SCORER_KEY: ScenarioAnalysis,
}


def _answer_quality_fn(route: LlmRoute, client: Optional[httpx.AsyncClient]) -> Callable[..., Any]:
    async def invoke(inp: AnswerQualityInput) -> AnswerQualityVerdict:
        return await chat(answer_quality_messages(inp), AnswerQualityVerdict, cfg=route, client=client)

    return invoke


def _scenario_scorer_fn(route: LlmRoute, client: Optional[httpx.AsyncClient]) -> Callable[..., Any]:
    async def invoke(request: ScenarioScoreRequest) -> ScenarioAnalysis:
        return await chat(scenario_scoring_messages(request), ScenarioAnalysis, cfg=route, client=client)

    return invoke


_FACTORIES = {
    ANSWER_QUALITY_KEY: _answer_quality_fn,
    SCENARIO_SCORER_KEY: _scenario_scorer_fn,
}


def bind_default_models(
    cfg: AppConfig,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, LlmRoute]:
    """Bind both evaluator keys to their routes; returns the route used per key."""

    resolved = resolve_registry(cfg, SCHEMAS)
    bound: Dict[str, LlmRoute] = {}
    for key, (route, _schema) in resolved.items():
        bind_model(key, _FACTORIES[key](route, client))
        bound[key] = route
        logger.info("Bound %s to route=%s model=%s", key, route.name, route.model)
    return bound


def bind_from_path(path: str | Path) -> Dict[str, LlmRoute]:
    return bind_default_models(load_config(Path(path)))


__all__ = ["SCHEMAS", "bind_default_models", "bind_from_path"]
