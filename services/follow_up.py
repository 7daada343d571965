"""Follow-up controller: per-scenario follow-up decisions and session navigation.

Phases per position ``i``::

    AWAITING_ANSWER(i) -> EVALUATING(i) -> FOLLOW_UP_INSERTED(i) -> AWAITING_ANSWER(i+1)
                                        -> ADVANCING(i) -> AWAITING_ANSWER(i+1) | DONE

A follow-up is spliced directly after the answered entry and becomes the next
position. Follow-up answers always advance; only base questions are evaluated.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from agents.answer_quality import evaluate_answer_quality
from agents.types import AnswerQualityInput, ConversationEntry, QualityOutcome, Scenario
from config.settings import settings
from observability import log_event, span

logger = logging.getLogger(__name__)

FOLLOW_UP_ID_OFFSET = 1000
FOLLOW_UP_MARKER_RE = re.compile(r"\d+\.[a-z]\)")

Evaluator = Callable[[AnswerQualityInput], Awaitable[QualityOutcome]]


class Phase(str, Enum):
    AWAITING_ANSWER = "awaiting_answer"
    EVALUATING = "evaluating"
    FOLLOW_UP_INSERTED = "follow_up_inserted"
    ADVANCING = "advancing"
    DONE = "done"


class SessionState(BaseModel):
    """Live state of one assessment, owned by its controller."""

    session_id: str
    user_id: str
    candidate_name: str = "Anonymous"

    scenarios: List[Scenario] = Field(default_factory=list)
    entries: List[ConversationEntry] = Field(default_factory=list)

    # base question number -> follow-ups generated for it
    follow_up_counts: Dict[int, int] = Field(default_factory=dict)
    max_follow_ups: int = Field(default=2, ge=0)

    current_index: int = 0
    phase: Phase = Phase.AWAITING_ANSWER

    events: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def start(
        cls,
        session_id: str,
        user_id: str,
        scenarios: List[Scenario],
        *,
        candidate_name: str = "Anonymous",
        max_follow_ups: Optional[int] = None,
    ) -> "SessionState":
        limit = settings.MAX_FOLLOW_UPS if max_follow_ups is None else max_follow_ups
        return cls(
            session_id=session_id,
            user_id=user_id,
            candidate_name=candidate_name,
            scenarios=list(scenarios),
            entries=[ConversationEntry.from_scenario(s) for s in scenarios],
            max_follow_ups=limit,
            phase=Phase.DONE if not scenarios else Phase.AWAITING_ANSWER,
        )

    @property
    def total_questions(self) -> int:
        return len(self.entries)

    @property
    def done(self) -> bool:
        return self.phase is Phase.DONE

    @property
    def base_scenarios(self) -> List[Scenario]:
        return [s for s in self.scenarios if s.parent_id is None]


class SubmitResult(BaseModel):
    index: int
    next_index: Optional[int]
    done: bool
    follow_up_inserted: bool = False
    follow_up_question: Optional[str] = None
    evaluated: bool = False
    outcome_status: Optional[str] = None


def has_follow_up_marker(text: str) -> bool:
    return bool(FOLLOW_UP_MARKER_RE.search(text or ""))


class FollowUpController:
    """Drives one session's conversation; the only writer of its entries and counters."""

    def __init__(self, state: SessionState, *, evaluator: Optional[Evaluator] = None) -> None:
        self.state = state
        self._evaluate = evaluator or evaluate_answer_quality

    def resolve_scenario(self, entry: ConversationEntry) -> Optional[Scenario]:
        bases = self.state.base_scenarios
        if entry.scenario_id is not None:
            for scenario in bases:
                if scenario.id == entry.scenario_id:
                    return scenario
        text = entry.question or ""
        for scenario in bases:
            if scenario.situation in text and scenario.question in text:
                return scenario
        return None

    def base_number(self, scenario: Scenario) -> int:
        for position, candidate in enumerate(self.state.base_scenarios):
            if candidate.id == scenario.id:
                return position + 1
        return 1

    async def submit_answer(
        self,
        index: int,
        text: str,
        media_ref: Optional[str] = None,
    ) -> SubmitResult:
        state = self.state
        if state.done:
            raise ValueError("session is already complete")
        if index < 0 or index >= state.total_questions:
            raise ValueError(f"answer index {index} out of range 0..{state.total_questions - 1}")

        entry = state.entries[index]
        entry.answer = text or ""
        if media_ref:
            entry.media_ref = media_ref
        state.current_index = index
        log_event("answer_submitted", state.session_id, index=index, scenario_id=entry.scenario_id)

        scenario = self.resolve_scenario(entry)
        if scenario is None:
            logger.info("No scenario match for index=%d session=%s; advancing", index, state.session_id)
            return self._advance(index)

        if entry.is_follow_up or has_follow_up_marker(entry.question):
            return self._advance(index)

        base = self.base_number(scenario)
        count = state.follow_up_counts.get(base, 0)
        if state.max_follow_ups == 0 or count >= state.max_follow_ups:
            return self._advance(index)

        state.phase = Phase.EVALUATING
        inp = AnswerQualityInput(
            situation=scenario.situation,
            question=scenario.question,
            best_response_rationale=scenario.best_response_rationale,
            assessed_competency=scenario.assessed_competency,
            candidate_answer=entry.answer or "",
            question_number=base,
            follow_up_count=count,
            max_follow_ups=state.max_follow_ups,
        )
        with span(state, "answer_quality", index=index):
            outcome = await self._evaluate(inp)

        verdict = outcome.verdict
        if not verdict.needs_follow_up:
            return self._advance(index, evaluated=True, status=outcome.status)

        follow_up = self._insert_follow_up(index, scenario, base, count, verdict.follow_up_question or "")
        state.phase = Phase.AWAITING_ANSWER
        state.current_index = index + 1
        return SubmitResult(
            index=index,
            next_index=index + 1,
            done=False,
            follow_up_inserted=True,
            follow_up_question=follow_up.question,
            evaluated=True,
            outcome_status=outcome.status,
        )

    def _insert_follow_up(
        self,
        index: int,
        parent: Scenario,
        base: int,
        count: int,
        question: str,
    ) -> ConversationEntry:
        state = self.state
        state.phase = Phase.FOLLOW_UP_INSERTED
        child = Scenario(
            id=parent.id + FOLLOW_UP_ID_OFFSET + count + 1,
            situation=parent.situation,
            question=question,
            best_response_rationale=parent.best_response_rationale,
            worst_response_rationale=parent.worst_response_rationale,
            assessed_competency=parent.assessed_competency,
            parent_id=parent.id,
        )
        entry = ConversationEntry(
            question=child.question,
            situation=child.situation,
            best_response_rationale=child.best_response_rationale,
            worst_response_rationale=child.worst_response_rationale,
            assessed_competency=child.assessed_competency,
            scenario_id=parent.id,
            is_follow_up=True,
        )
        state.scenarios.append(child)
        state.entries.insert(index + 1, entry)
        state.follow_up_counts[base] = count + 1
        log_event(
            "follow_up_inserted",
            state.session_id,
            index=index + 1,
            scenario_id=parent.id,
            label=question.split(" ", 1)[0],
            count=count + 1,
        )
        return entry

    def _advance(self, index: int, *, evaluated: bool = False, status: Optional[str] = None) -> SubmitResult:
        state = self.state
        state.phase = Phase.ADVANCING
        if index >= state.total_questions - 1:
            state.phase = Phase.DONE
            state.current_index = state.total_questions
            log_event("session_done", state.session_id, index=index)
            return SubmitResult(index=index, next_index=None, done=True, evaluated=evaluated, outcome_status=status)
        state.phase = Phase.AWAITING_ANSWER
        state.current_index = index + 1
        return SubmitResult(
            index=index,
            next_index=index + 1,
            done=False,
            evaluated=evaluated,
            outcome_status=status,
        )


__all__ = [
    "FOLLOW_UP_ID_OFFSET",
    "FollowUpController",
    "Phase",
    "SessionState",
    "SubmitResult",
    "has_follow_up_marker",
]
