"""FastAPI routes for assessment session control."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException

from api.schemas import (
    AnswerReq,
    AnswerResp,
    CleanupResp,
    QuestionPayload,
    RecoveryResp,
    ReportResp,
    SessionReq,
    SessionResp,
    StartReq,
)
from services.follow_up import SessionState
from services.partial_submissions import PartialSubmissionService
from services.sessions import (
    AssessmentSession,
    check_recovery,
    load_session,
    resume_session,
    start_session,
)


router = APIRouter(prefix="/api/assessments")


def _question(state: SessionState, index: Optional[int]) -> Optional[QuestionPayload]:
    if index is None or index < 0 or index >= state.total_questions:
        return None
    entry = state.entries[index]
    return QuestionPayload(
        index=index,
        text=entry.question,
        competency=entry.assessed_competency,
        is_follow_up=entry.is_follow_up,
    )


def _session_resp(state: SessionState) -> SessionResp:
    return SessionResp(
        session_id=state.session_id,
        total_questions=state.total_questions,
        current_index=state.current_index,
        done=state.done,
        question=None if state.done else _question(state, state.current_index),
        answered=[i for i, e in enumerate(state.entries) if e.is_answered],
    )


def _require_session(session_id: str) -> SessionState:
    try:
        state = load_session(session_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if state is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return state


@router.post("/start", response_model=SessionResp)
def start(req: StartReq) -> SessionResp:
    state = start_session(
        req.user_id,
        candidate_name=req.candidate_name or "Anonymous",
        max_follow_ups=req.max_follow_ups,
    )
    return _session_resp(state)


@router.post("/answer", response_model=AnswerResp)
async def answer(req: AnswerReq, background_tasks: BackgroundTasks) -> AnswerResp:
    state = _require_session(req.session_id)
    if state.done:
        raise HTTPException(status_code=400, detail="Session already complete")
    if req.index < 0 or req.index >= state.total_questions:
        raise HTTPException(status_code=400, detail="Answer index out of range")

    session = AssessmentSession(state, schedule=background_tasks.add_task)
    result = await session.submit_answer(req.index, req.answer, req.media)
    return AnswerResp(
        session_id=state.session_id,
        next_index=result.next_index,
        done=result.done,
        follow_up_inserted=result.follow_up_inserted,
        question=_question(state, result.next_index),
        total_questions=state.total_questions,
    )


@router.get("/recovery/{user_id}", response_model=Optional[RecoveryResp])
def recovery(user_id: str) -> Optional[RecoveryResp]:
    found = check_recovery(user_id)
    if found is None:
        return None
    return RecoveryResp(
        session_id=found.session_id,
        candidate_name=found.candidate_name,
        total_questions=found.total_questions,
        completed_questions=found.completed_questions,
        last_question_index=found.last_question_index,
        can_resume=found.can_resume,
        started_at=found.started_at.isoformat(),
        last_activity_at=found.last_activity_at.isoformat(),
    )


@router.post("/resume", response_model=SessionResp)
def resume(req: SessionReq) -> SessionResp:
    try:
        state = resume_session(req.session_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if state is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return _session_resp(state)


@router.post("/finalize", response_model=ReportResp)
async def finalize(req: SessionReq) -> ReportResp:
    state = _require_session(req.session_id)
    report = await AssessmentSession(state).finalize()
    return ReportResp(
        session_id=report.session_id,
        source=report.source,
        competencies=report.competencies,
        strengths=report.strengths,
        weaknesses=report.weaknesses,
        summary=report.summary,
        scenario_results=report.scenario_results,
    )


@router.post("/maintenance/cleanup", response_model=CleanupResp)
def cleanup() -> CleanupResp:
    return CleanupResp(deleted=PartialSubmissionService().cleanup_expired_sessions())
