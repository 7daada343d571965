"""Scores one scenario cluster or entry through the external evaluator."""
from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from agents.types import ScenarioAnalysis, ScenarioScoreRequest, ScoringOutcome
from config.registry import SCENARIO_SCORER_KEY, get_model
from services.retry import classify_error, retry

logger = logging.getLogger(__name__)


async def _invoke_model(request: ScenarioScoreRequest) -> ScenarioAnalysis:
    model = get_model(SCENARIO_SCORER_KEY)
    raw = model(request)
    if inspect.isawaitable(raw):
        raw = await raw
    if isinstance(raw, ScenarioAnalysis):
        return raw
    return ScenarioAnalysis.model_validate(raw)


async def score_scenario(
    request: ScenarioScoreRequest,
    *,
    retry_fn: Optional[Callable[..., Awaitable[Any]]] = None,
) -> ScoringOutcome:
    """Return ``scored`` with an analysis, or ``unavailable``/``invalid`` with a reason."""

    runner = retry_fn or retry
    label = f"scenario_score {request.assessed_competency}"
    try:
        analysis = await runner(lambda: _invoke_model(request), classify_error, label=label)
    except ValidationError as exc:
        logger.warning("Scenario score output invalid competency=%s: %s", request.assessed_competency, exc)
        return ScoringOutcome(status="invalid", reason=str(exc))
    except Exception as exc:  # noqa: BLE001
        status = "unavailable" if classify_error(exc) else "invalid"
        logger.warning(
            "Scenario score failed competency=%s status=%s: %s",
            request.assessed_competency,
            status,
            exc,
        )
        return ScoringOutcome(status=status, reason=str(exc))
    if not analysis.rationale.strip():
        return ScoringOutcome(status="invalid", reason="empty rationale")
    return ScoringOutcome(status="scored", analysis=analysis)


__all__ = ["score_scenario"]
