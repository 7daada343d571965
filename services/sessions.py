"""Session lifecycle: start, answer, recover, resume and finalize assessments."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from agents.types import AssessmentReport, ConversationEntry, Scenario
from config.settings import settings
from scenarios.catalog import load_catalog, load_scenarios
from services.aggregation import Scorer, build_report
from services.follow_up import Evaluator, FollowUpController, Phase, SessionState, SubmitResult
from services.partial_submissions import PartialSubmissionService, SaveResult, generate_session_id
from services.recovery import SessionRecovery, SessionRecoveryResolver
from services.timestamps import record_timestamp
from storage import partials
from storage.checkpoints import delete_checkpoint, load_checkpoint, save_checkpoint
from storage.reports import insert_report

logger = logging.getLogger(__name__)

Schedule = Callable[..., None]


def start_session(
    user_id: str,
    *,
    candidate_name: str = "Anonymous",
    scenarios: Optional[List[Scenario]] = None,
    max_follow_ups: Optional[int] = None,
    session_id: Optional[str] = None,
) -> SessionState:
    """Create a new session over the catalog (or ``scenarios``) and checkpoint it."""

    chosen = scenarios if scenarios is not None else load_scenarios()
    state = SessionState.start(
        session_id or generate_session_id(),
        user_id,
        chosen,
        candidate_name=candidate_name or "Anonymous",
        max_follow_ups=max_follow_ups,
    )
    save_checkpoint(state)
    logger.info("Started session=%s user=%s scenarios=%d", state.session_id, user_id, len(chosen))
    return state


def load_session(session_id: str) -> Optional[SessionState]:
    """Load the last checkpointed state for ``session_id`` if present."""

    return load_checkpoint(session_id)


class AssessmentSession:
    """One active session: controller decisions first, persistence catching up behind."""

    def __init__(
        self,
        state: SessionState,
        *,
        persistence: Optional[PartialSubmissionService] = None,
        evaluator: Optional[Evaluator] = None,
        schedule: Optional[Schedule] = None,
    ) -> None:
        self.state = state
        self.controller = FollowUpController(state, evaluator=evaluator)
        self.persistence = persistence or PartialSubmissionService()
        self._schedule = schedule or self._spawn
        self._pending: Set[asyncio.Task] = set()
        self.save_results: List[SaveResult] = []

    def _spawn(self, fn: Callable[..., SaveResult], *args: Any, **kwargs: Any) -> None:
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(fn, *args, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._on_saved)

    def _on_saved(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background save failed session=%s: %s", self.state.session_id, exc)
            return
        result = task.result()
        self.save_results.append(result)
        if not result.success:
            logger.warning(
                "Answer not persisted session=%s error=%s retry_after=%ss",
                self.state.session_id,
                result.error,
                result.retry_after_seconds,
            )

    async def submit_answer(self, index: int, text: str, media: Optional[str] = None) -> SubmitResult:
        result = await self.controller.submit_answer(index, text, media)
        state = self.state
        snapshot = state.entries[index].model_copy()
        self._schedule(
            self.persistence.save_question_answer,
            state.session_id,
            state.user_id,
            index,
            state.total_questions,
            snapshot,
            candidate_name=state.candidate_name,
            max_follow_ups=state.max_follow_ups,
            scenario_ids=[s.id for s in state.base_scenarios],
        )
        save_checkpoint(state)
        return result

    async def drain(self) -> List[SaveResult]:
        """Wait for outstanding background saves."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        return list(self.save_results)

    async def finalize(self, *, scorer: Optional[Scorer] = None) -> AssessmentReport:
        await self.drain()
        report = await finalize_history(
            self.state.session_id,
            self.state.entries,
            user_id=self.state.user_id,
            persistence=self.persistence,
            scorer=scorer,
        )
        delete_checkpoint(self.state.session_id)
        return report


def check_recovery(user_id: str) -> Optional[SessionRecovery]:
    return SessionRecoveryResolver().check_incomplete_session(user_id)


def entry_from_record(record: Dict[str, Any]) -> ConversationEntry:
    return ConversationEntry.model_validate(
        {
            "question": record.get("question") or "",
            "answer": record.get("answer"),
            "media_ref": record.get("media_url") or record.get("media_data_uri"),
            "situation": record.get("situation"),
            "best_response_rationale": record.get("best_response_rationale"),
            "worst_response_rationale": record.get("worst_response_rationale"),
            "assessed_competency": record.get("assessed_competency"),
            "competency": record.get("competency"),
            "scenario_id": record.get("scenario_id"),
            "is_follow_up": bool(record.get("is_follow_up", False)),
        }
    )


def _latest_value(records: Sequence[Dict[str, Any]], key: str) -> Any:
    """Value of ``key`` on the most recently written record that carries it."""

    for record in sorted(records, key=lambda r: record_timestamp(r)[0], reverse=True):
        value = record.get(key)
        if value is not None:
            return value
    return None


def _restore_from_partials(session_id: str, records: Sequence[Dict[str, Any]]) -> SessionState:
    ordered = sorted(records, key=lambda r: (int(r.get("question_index", 0)), record_timestamp(r)[0]))
    latest: Dict[int, Dict[str, Any]] = {}
    for record in ordered:
        latest[int(record.get("question_index", 0))] = record
    entries = [entry_from_record(latest[i]) for i in sorted(latest)]
    first = ordered[0]
    total = max(int(r.get("total_questions", 0) or 0) for r in ordered)

    stored_cap = _latest_value(records, "max_follow_ups")
    max_follow_ups = settings.MAX_FOLLOW_UPS if stored_cap is None else int(stored_cap)

    # The session's own selection, in presentation order; records written
    # before selections were stored fall back to the catalog order.
    catalog = load_catalog().scenarios
    by_id = {s.id: s for s in catalog}
    stored_ids = _latest_value(records, "scenario_ids")
    if stored_ids:
        selection = [by_id[int(i)] for i in stored_ids if int(i) in by_id]
    else:
        selection = list(catalog)

    seen_ids = {e.scenario_id for e in entries if e.scenario_id is not None}
    for scenario in selection:
        if len(entries) >= total:
            break
        if scenario.id not in seen_ids:
            entries.append(ConversationEntry.from_scenario(scenario))
            seen_ids.add(scenario.id)
    scenarios = [s for s in selection if s.id in seen_ids]

    state = SessionState(
        session_id=session_id,
        user_id=str(first.get("user_id", "")),
        candidate_name=str(first.get("candidate_name") or "Anonymous"),
        scenarios=scenarios,
        entries=entries,
        max_follow_ups=max_follow_ups,
    )
    controller = FollowUpController(state)
    for entry in entries:
        if not entry.is_follow_up:
            continue
        scenario = controller.resolve_scenario(entry)
        if scenario is not None:
            base = controller.base_number(scenario)
            state.follow_up_counts[base] = state.follow_up_counts.get(base, 0) + 1
    return state


def resume_session(session_id: str) -> Optional[SessionState]:
    """Restore a session from its checkpoint, else from its partial submissions."""

    state = load_checkpoint(session_id)
    if state is None:
        records = partials.fetch_for_session(session_id)
        if not records:
            return None
        state = _restore_from_partials(session_id, records)

    pending = [i for i, e in enumerate(state.entries) if not e.is_answered]
    if pending:
        state.current_index = pending[0]
        state.phase = Phase.AWAITING_ANSWER
    else:
        state.current_index = state.total_questions
        state.phase = Phase.DONE
    save_checkpoint(state)
    logger.info("Resumed session=%s at index=%d", session_id, state.current_index)
    return state


async def finalize_history(
    session_id: str,
    entries: Sequence[ConversationEntry],
    *,
    user_id: str,
    persistence: Optional[PartialSubmissionService] = None,
    scorer: Optional[Scorer] = None,
) -> AssessmentReport:
    """Score a finished history, persist the report and mark partials complete."""

    report = await build_report(session_id, entries, scorer=scorer)
    insert_report(
        session_id=session_id,
        user_id=user_id,
        source=report.source,
        report=report.model_dump(mode="json"),
    )
    (persistence or PartialSubmissionService()).mark_session_complete(session_id)
    return report


async def finalize_session(session_id: str, *, scorer: Optional[Scorer] = None) -> Optional[AssessmentReport]:
    state = load_checkpoint(session_id)
    if state is None:
        return None
    return await AssessmentSession(state).finalize(scorer=scorer)


__all__ = [
    "AssessmentSession",
    "check_recovery",
    "entry_from_record",
    "finalize_history",
    "finalize_session",
    "load_session",
    "resume_session",
    "start_session",
]
