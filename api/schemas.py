"""Pydantic schemas for the assessment session API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from agents.types import CompetencyScore, ScenarioResult


class StartReq(BaseModel):
    user_id: str
    candidate_name: Optional[str] = None
    max_follow_ups: Optional[int] = Field(default=None, ge=0)


class AnswerReq(BaseModel):
    session_id: str
    index: int
    answer: str = ""
    media: Optional[str] = None


class SessionReq(BaseModel):
    session_id: str


class QuestionPayload(BaseModel):
    index: int
    text: str
    competency: Optional[str] = None
    is_follow_up: bool = False


class SessionResp(BaseModel):
    session_id: str
    total_questions: int
    current_index: int
    done: bool
    question: Optional[QuestionPayload] = None
    answered: List[int] = Field(default_factory=list)


class AnswerResp(BaseModel):
    session_id: str
    next_index: Optional[int] = None
    done: bool
    follow_up_inserted: bool = False
    question: Optional[QuestionPayload] = None
    total_questions: int


class RecoveryResp(BaseModel):
    session_id: str
    candidate_name: str
    total_questions: int
    completed_questions: int
    last_question_index: int
    can_resume: bool
    started_at: str
    last_activity_at: str


class ReportResp(BaseModel):
    session_id: str
    source: str
    competencies: List[CompetencyScore]
    strengths: str
    weaknesses: str
    summary: str
    scenario_results: List[ScenarioResult] = Field(default_factory=list)


class CleanupResp(BaseModel):
    deleted: int
