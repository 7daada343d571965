"""Competency aggregation: score scenario clusters and build the final report."""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from agents.scenario_scorer import score_scenario
from agents.types import (
    AssessmentReport,
    CompetencyScore,
    ConversationEntry,
    ScenarioResult,
    ScenarioScoreRequest,
    ScoringOutcome,
    ThreadTurn,
)
from observability import log_event
from services.grouping import cluster_history, is_follow_up
from storage.reports import latest_report

logger = logging.getLogger(__name__)

Scorer = Callable[[ScenarioScoreRequest], Awaitable[ScoringOutcome]]

STRENGTH_THRESHOLD = 6.0
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _round1(value: float) -> float:
    """Round a float to one decimal place with stable formatting."""
    return float(f"{value:.1f}")


def _competency(entry: ConversationEntry, number: int) -> str:
    return (entry.assessed_competency or "").strip() or f"Situational Judgment {number}"


def _entry_is_follow_up(entry: ConversationEntry) -> bool:
    return entry.is_follow_up or is_follow_up(entry.question)


def _single_request(entry: ConversationEntry, competency: str) -> ScenarioScoreRequest:
    return ScenarioScoreRequest(
        situation=entry.situation or entry.question,
        question=entry.question,
        best_response_rationale=entry.best_response_rationale or "",
        worst_response_rationale=entry.worst_response_rationale or "",
        assessed_competency=competency,
        candidate_answer=entry.answer or "",
    )


def _holistic_request(entries: Sequence[ConversationEntry], competency: str) -> ScenarioScoreRequest:
    base = next((e for e in entries if not _entry_is_follow_up(e)), entries[0])
    thread = [
        ThreadTurn(question=e.question, answer=e.answer or "", is_follow_up=_entry_is_follow_up(e))
        for e in entries
    ]
    request = _single_request(base, competency)
    return request.model_copy(
        update={
            "candidate_answer": "\n\n".join(e.answer or "" for e in entries),
            "conversation_thread": thread,
            "has_multiple_responses": len(entries) > 1,
        }
    )


class CompetencyAggregator:
    """Scores clusters sequentially and averages results per competency."""

    def __init__(self, session_id: str, *, scorer: Optional[Scorer] = None) -> None:
        self.session_id = session_id
        self._scorer = scorer or score_scenario

    async def _evaluate(self, request: ScenarioScoreRequest, number: int) -> Optional[ScoringOutcome]:
        outcome = await self._scorer(request)
        if outcome.is_scored and outcome.analysis is not None:
            return outcome
        log_event(
            "cluster_dropped",
            self.session_id,
            scenario_id=number,
            competency=request.assessed_competency,
            status=outcome.status,
            reason=outcome.reason,
        )
        return None

    async def score_cluster(self, number: int, entries: Sequence[ConversationEntry]) -> List[ScenarioResult]:
        follow_ups = sum(1 for e in entries if _entry_is_follow_up(e))
        competencies = {_competency(e, number) for e in entries}
        if len(competencies) == 1:
            competency = competencies.pop()
            outcome = await self._evaluate(_holistic_request(entries, competency), number)
            if outcome is not None:
                result = ScenarioResult(
                    scenario_number=number,
                    competency=competency,
                    score=outcome.analysis.score,
                    rationale=outcome.analysis.rationale,
                    holistic=True,
                    follow_up_count=follow_ups,
                )
                log_event("cluster_scored", self.session_id, scenario_id=number, competency=competency, score=result.score)
                return [result]
            if len(entries) == 1:
                return []
            logger.info("Holistic scoring failed for scenario %d; scoring entries individually", number)

        results: List[ScenarioResult] = []
        for entry in entries:
            competency = _competency(entry, number)
            outcome = await self._evaluate(_single_request(entry, competency), number)
            if outcome is None:
                continue
            results.append(
                ScenarioResult(
                    scenario_number=number,
                    competency=competency,
                    score=outcome.analysis.score,
                    rationale=outcome.analysis.rationale,
                    follow_up_count=follow_ups,
                )
            )
            log_event("cluster_scored", self.session_id, scenario_id=number, competency=competency, score=outcome.analysis.score)
        return results

    async def score_history(self, entries: Sequence[ConversationEntry]) -> List[ScenarioResult]:
        clusters, ungrouped = cluster_history(entries)
        results: List[ScenarioResult] = []
        for number, members in clusters.items():
            results.extend(await self.score_cluster(number, members))
        offset = len(clusters)
        for position, entry in enumerate(ungrouped, start=1):
            results.extend(await self.score_cluster(offset + position, [entry]))
        return results


def aggregate_scores(results: Sequence[ScenarioResult]) -> List[CompetencyScore]:
    """Mean score per competency, rounded to one decimal, in first-seen order."""

    buckets: "OrderedDict[str, List[float]]" = OrderedDict()
    for result in results:
        buckets.setdefault(result.competency, []).append(result.score)
    return [
        CompetencyScore(name=name, score=_round1(sum(scores) / len(scores)))
        for name, scores in buckets.items()
    ]


def _trim_sentences(text: str, limit: int = 3) -> str:
    sentences = [s for s in _SENTENCE_SPLIT.split(text.strip()) if s]
    return " ".join(sentences[:limit])


def performance_level(score: float) -> str:
    if score >= 8:
        return "Excellent"
    if score >= 7:
        return "Very Good"
    if score >= 6:
        return "Good"
    if score >= 5:
        return "Satisfactory"
    return "Needs Improvement"


def _competency_line(name: str, score: float, results: List[ScenarioResult], strongest: bool) -> str:
    chosen = max(results, key=lambda r: r.score) if strongest else min(results, key=lambda r: r.score)
    scenarios = ", ".join(f"Scenario {n}" for n in sorted({r.scenario_number for r in results}))
    return f"{name} ({score}/10, from {scenarios}): {_trim_sentences(chosen.rationale)}"


def build_narrative(results: Sequence[ScenarioResult], competencies: Sequence[CompetencyScore]) -> Dict[str, str]:
    by_name: Dict[str, List[ScenarioResult]] = {}
    for result in results:
        by_name.setdefault(result.competency, []).append(result)

    strengths: List[str] = []
    weaknesses: List[str] = []
    for competency in competencies:
        members = by_name.get(competency.name, [])
        if not members:
            continue
        if competency.score >= STRENGTH_THRESHOLD:
            strengths.append(_competency_line(competency.name, competency.score, members, True))
        else:
            weaknesses.append(_competency_line(competency.name, competency.score, members, False))

    overall = _round1(sum(c.score for c in competencies) / len(competencies)) if competencies else 0.0
    with_follow_ups = len({r.scenario_number for r in results if r.follow_up_count > 0})
    summary = (
        f"Overall performance level: {performance_level(overall)} "
        f"(average {overall}/10 across {len(competencies)} competencies). "
        f"{with_follow_ups} scenario(s) included follow-up questions."
    )
    return {
        "strengths": "\n".join(strengths) or "No competency reached the strength threshold in this assessment.",
        "weaknesses": "\n".join(weaknesses) or "No specific development areas were identified.",
        "summary": summary,
    }


def placeholder_report(session_id: str, answered: int, total: int) -> AssessmentReport:
    ratio = answered / total if total > 0 else 0.0
    score = float(min(10, max(0, round(ratio * 10))))
    return AssessmentReport(
        session_id=session_id,
        competencies=[CompetencyScore(name="Participation", score=score)],
        strengths=f"The candidate answered {answered} of {total} questions.",
        weaknesses="Detailed competency scoring was unavailable for this session.",
        summary=(
            "Automated scoring could not be completed, so this report reflects participation only. "
            "A reviewer should assess the recorded answers directly."
        ),
        source="placeholder",
    )


def fallback_report(session_id: str, answered: int, total: int) -> AssessmentReport:
    """Latest persisted report for the session, else a participation placeholder."""

    prior = latest_report(session_id)
    if prior is not None:
        try:
            report = AssessmentReport.model_validate(prior)
        except ValidationError as exc:
            logger.warning("Stored report for session=%s is unreadable: %s", session_id, exc)
        else:
            if report.competencies:
                return report.model_copy(update={"source": "prior_report"})
    return placeholder_report(session_id, answered, total)


async def build_report(
    session_id: str,
    entries: Sequence[ConversationEntry],
    *,
    total_questions: Optional[int] = None,
    scorer: Optional[Scorer] = None,
) -> AssessmentReport:
    aggregator = CompetencyAggregator(session_id, scorer=scorer)
    results = await aggregator.score_history(entries)
    answered = sum(1 for e in entries if e.is_answered)
    total = len(entries) if total_questions is None else total_questions

    if not results:
        report = fallback_report(session_id, answered, total)
        log_event("report_built", session_id, source=report.source, count=0)
        return report

    competencies = aggregate_scores(results)
    narrative = build_narrative(results, competencies)
    report = AssessmentReport(
        session_id=session_id,
        competencies=competencies,
        strengths=narrative["strengths"],
        weaknesses=narrative["weaknesses"],
        summary=narrative["summary"],
        source="analysis",
        scenario_results=results,
        metadata={"answered": answered, "total_questions": total},
    )
    log_event("report_built", session_id, source=report.source, count=len(results))
    return report


__all__ = [
    "CompetencyAggregator",
    "aggregate_scores",
    "build_narrative",
    "build_report",
    "fallback_report",
    "performance_level",
    "placeholder_report",
]
