"""Answer quality evaluator deciding whether a follow-up question is needed."""
from __future__ import annotations

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from agents.types import AnswerQualityInput, AnswerQualityVerdict, QualityOutcome
from config.registry import ANSWER_QUALITY_KEY, get_model
from services.retry import classify_error, retry

logger = logging.getLogger(__name__)

FOLLOW_UP_LABEL_RE = re.compile(r"^\d+\.[a-z]\)\s*", re.IGNORECASE)

LIMIT_REACHED_RATIONALE = (
    "Maximum follow-up limit reached: the allowed number of follow-up questions "
    "has been asked for this scenario."
)
UNAVAILABLE_RATIONALE = (
    "Answer evaluation was unavailable because the scoring service is busy. "
    "Proceeding without a follow-up."
)
INVALID_RATIONALE = (
    "An error occurred during answer evaluation. Proceeding without a follow-up."
)

RetryFn = Callable[..., Awaitable[Any]]


def follow_up_letter(count: int) -> str:
    return chr(ord("a") + count)


def label_follow_up(text: str, base_number: int, count: int) -> str:
    """Return ``text`` carrying the ``"{base}.{letter})"`` label for follow-up ``count``."""

    prefix = f"{base_number}.{follow_up_letter(count)})"
    stripped = text.strip()
    if stripped.startswith(prefix):
        return stripped
    body = FOLLOW_UP_LABEL_RE.sub("", stripped, count=1)
    return f"{prefix} {body}"


def _fallback(score: float, missing: str, rationale: str) -> AnswerQualityVerdict:
    return AnswerQualityVerdict(
        is_complete=True,
        completion_score=score,
        missing_aspects=[missing],
        follow_up_question=None,
        rationale=rationale,
    )


def _normalize(verdict: AnswerQualityVerdict, inp: AnswerQualityInput) -> AnswerQualityVerdict:
    follow_up = verdict.follow_up_question
    if follow_up is None or not follow_up.strip():
        # An empty follow-up means there is nothing to ask.
        return verdict.model_copy(update={"is_complete": True, "follow_up_question": None})
    if verdict.is_complete:
        return verdict.model_copy(update={"follow_up_question": None})
    labelled = label_follow_up(follow_up, inp.question_number, inp.follow_up_count)
    return verdict.model_copy(update={"follow_up_question": labelled})


async def _invoke_model(inp: AnswerQualityInput) -> AnswerQualityVerdict:
    model = get_model(ANSWER_QUALITY_KEY)
    raw = model(inp)
    if inspect.isawaitable(raw):
        raw = await raw
    if isinstance(raw, AnswerQualityVerdict):
        return raw
    return AnswerQualityVerdict.model_validate(raw)


async def evaluate_answer_quality(
    inp: AnswerQualityInput,
    *,
    retry_fn: Optional[RetryFn] = None,
) -> QualityOutcome:
    """Evaluate one answer; every failure path fails open to ``is_complete=True``."""

    if inp.follow_up_count >= inp.max_follow_ups:
        verdict = _fallback(7.0, "Maximum follow-up limit reached", LIMIT_REACHED_RATIONALE)
        return QualityOutcome(status="scored", reason="follow-up limit reached", verdict=verdict)

    runner = retry_fn or retry
    try:
        verdict = await runner(
            lambda: _invoke_model(inp),
            classify_error,
            label=f"answer_quality q{inp.question_number}",
        )
    except ValidationError as exc:
        logger.warning("Answer quality output invalid q=%s: %s", inp.question_number, exc)
        verdict = _fallback(5.0, "Could not evaluate answer properly", INVALID_RATIONALE)
        return QualityOutcome(status="invalid", reason=str(exc), verdict=verdict)
    except Exception as exc:  # noqa: BLE001
        if classify_error(exc):
            logger.warning("Answer quality unavailable q=%s: %s", inp.question_number, exc)
            verdict = _fallback(7.0, "Evaluation unavailable", UNAVAILABLE_RATIONALE)
            return QualityOutcome(status="unavailable", reason=str(exc), verdict=verdict)
        logger.error("Answer quality evaluation failed q=%s: %s", inp.question_number, exc)
        verdict = _fallback(5.0, "Error during evaluation", INVALID_RATIONALE)
        return QualityOutcome(status="invalid", reason=str(exc), verdict=verdict)

    return QualityOutcome(status="scored", verdict=_normalize(verdict, inp))


__all__ = [
    "FOLLOW_UP_LABEL_RE",
    "evaluate_answer_quality",
    "follow_up_letter",
    "label_follow_up",
]
