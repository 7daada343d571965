"""Shared type definitions for the assessment engine."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

OutcomeStatus = Literal["scored", "unavailable", "invalid"]


class Scenario(BaseModel):
    id: int
    situation: str
    question: str
    best_response_rationale: str = ""
    worst_response_rationale: str = ""
    assessed_competency: str
    parent_id: Optional[int] = None

    model_config = {"frozen": True}

    @property
    def prompt_text(self) -> str:
        return f"Situation: {self.situation}\n\nQuestion: {self.question}"


class ConversationEntry(BaseModel):
    question: str
    answer: Optional[str] = None
    media_ref: Optional[str] = None
    situation: Optional[str] = None
    best_response_rationale: Optional[str] = None
    worst_response_rationale: Optional[str] = None
    assessed_competency: Optional[str] = None
    scenario_id: Optional[int] = None
    is_follow_up: bool = False

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_competency(cls, data: Any) -> Any:
        # Older records stored the competency under ``competency``.
        if isinstance(data, dict) and "competency" in data:
            data = dict(data)
            legacy = data.pop("competency")
            if not data.get("assessed_competency"):
                data["assessed_competency"] = legacy
        return data

    @property
    def is_answered(self) -> bool:
        return bool(self.answer and self.answer.strip())

    @classmethod
    def from_scenario(cls, scenario: Scenario) -> "ConversationEntry":
        return cls(
            question=scenario.prompt_text,
            situation=scenario.situation,
            best_response_rationale=scenario.best_response_rationale,
            worst_response_rationale=scenario.worst_response_rationale,
            assessed_competency=scenario.assessed_competency,
            scenario_id=scenario.id,
        )


class AnswerQualityInput(BaseModel):
    situation: str
    question: str
    best_response_rationale: str
    assessed_competency: str
    candidate_answer: str
    question_number: int
    follow_up_count: int
    max_follow_ups: int


class AnswerQualityVerdict(BaseModel):
    is_complete: bool
    completion_score: float = Field(ge=0.0, le=10.0)
    missing_aspects: List[str] = Field(default_factory=list)
    follow_up_question: Optional[str] = None
    rationale: str = ""

    @property
    def needs_follow_up(self) -> bool:
        return not self.is_complete and bool(self.follow_up_question and self.follow_up_question.strip())


class ThreadTurn(BaseModel):
    question: str
    answer: str
    is_follow_up: bool = False


class ScenarioScoreRequest(BaseModel):
    situation: str
    question: str
    best_response_rationale: str
    worst_response_rationale: str
    assessed_competency: str
    candidate_answer: str
    conversation_thread: List[ThreadTurn] = Field(default_factory=list)
    has_multiple_responses: bool = False


class ScenarioAnalysis(BaseModel):
    score: float = Field(ge=0.0, le=10.0)
    rationale: str
    strengths_observed: List[str] = Field(default_factory=list)
    weaknesses_observed: List[str] = Field(default_factory=list)
    competency_evidence: Optional[str] = None


class EvaluationOutcome(BaseModel):
    """Result of one call to the external evaluator.

    ``scored`` means the service answered with a valid payload, ``unavailable``
    means it was overloaded or unreachable after retries, and ``invalid`` covers
    malformed output or any other failure.
    """

    status: OutcomeStatus
    reason: str = ""

    @property
    def is_scored(self) -> bool:
        return self.status == "scored"


class QualityOutcome(EvaluationOutcome):
    verdict: AnswerQualityVerdict


class ScoringOutcome(EvaluationOutcome):
    analysis: Optional[ScenarioAnalysis] = None


class ScenarioResult(BaseModel):
    scenario_number: int
    competency: str
    score: float
    rationale: str
    holistic: bool = False
    follow_up_count: int = 0


class CompetencyScore(BaseModel):
    name: str
    score: float = Field(ge=0.0, le=10.0)


class AssessmentReport(BaseModel):
    session_id: str
    competencies: List[CompetencyScore]
    strengths: str
    weaknesses: str
    summary: str
    source: Literal["analysis", "prior_report", "placeholder"] = "analysis"
    scenario_results: List[ScenarioResult] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
