from __future__ import annotations  # Prompt templates for the external evaluator calls

from textwrap import dedent
from typing import Iterable, List

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate

from .types import AnswerQualityInput, ScenarioScoreRequest, ThreadTurn


ANSWER_QUALITY_GUIDANCE = dedent(  # Completeness check guardrails
    """
    You are an expert talent assessor evaluating answers in a situational judgement test.
    Decide whether the candidate's answer matches the ideal response criteria or needs a follow-up.
    Mark thorough answers complete even when follow-ups remain available.
    Generate at most one targeted follow-up question and only when it is genuinely needed.
    Never generate a follow-up once the follow-up count has reached the maximum.
    """
).strip()

SCENARIO_SCORING_GUIDANCE = dedent(  # Scoring guardrails
    """
    You are an expert talent assessor scoring a candidate's handling of a workplace scenario.
    Use the best and worst response rationales as anchors for a 0-10 score on the assessed competency.
    When a conversation thread is provided, judge the candidate on the whole thread including follow-up answers.
    Cite concrete behaviours from the answers as strengths and weaknesses.
    """
).strip()


ANSWER_QUALITY_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{instructions}"),
        (
            "human",
            (
                "Scenario: {situation}\n"
                "Question {question_number}: {question}\n"
                "Ideal response criteria: {best_response_rationale}\n"
                "Competency being assessed: {assessed_competency}\n"
                "Current follow-up count: {follow_up_count} out of {max_follow_ups} maximum allowed\n\n"
                "Candidate answer:\n\"{candidate_answer}\"\n\n"
                "If a follow-up is needed, start it with the label \"{question_number}.{next_letter})\".\n"
                "Return JSON with is_complete, completion_score, missing_aspects, follow_up_question and rationale."
            ),
        ),
    ]
)

SCENARIO_SCORING_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{instructions}"),
        (
            "human",
            (
                "Situation: {situation}\n"
                "Question: {question}\n"
                "Assessed competency: {assessed_competency}\n"
                "Best response rationale: {best_response_rationale}\n"
                "Worst response rationale: {worst_response_rationale}\n\n"
                "{answer_block}\n\n"
                "Return JSON with score, rationale, strengths_observed, weaknesses_observed and competency_evidence."
            ),
        ),
    ]
)


def _next_letter(count: int) -> str:
    return chr(ord("a") + max(0, count))


def _thread_lines(thread: Iterable[ThreadTurn]) -> List[str]:
    lines: List[str] = []
    for number, turn in enumerate(thread, start=1):
        kind = "Follow-up" if turn.is_follow_up else "Original"
        lines.append(f"{number}. [{kind}] Q: {turn.question.strip()}")
        lines.append(f"   A: {turn.answer.strip() or '(no answer)'}")
    return lines


def answer_quality_messages(inp: AnswerQualityInput) -> List[BaseMessage]:
    return ANSWER_QUALITY_PROMPT.format_messages(
        instructions=ANSWER_QUALITY_GUIDANCE,
        situation=inp.situation,
        question=inp.question,
        question_number=inp.question_number,
        best_response_rationale=inp.best_response_rationale or "(not provided)",
        assessed_competency=inp.assessed_competency,
        follow_up_count=inp.follow_up_count,
        max_follow_ups=inp.max_follow_ups,
        candidate_answer=inp.candidate_answer,
        next_letter=_next_letter(inp.follow_up_count),
    )


def scenario_scoring_messages(request: ScenarioScoreRequest) -> List[BaseMessage]:
    if request.has_multiple_responses and request.conversation_thread:
        answer_block = "Conversation thread:\n" + "\n".join(_thread_lines(request.conversation_thread))
    else:
        answer_block = f"Candidate answer:\n\"{request.candidate_answer}\""
    return SCENARIO_SCORING_PROMPT.format_messages(
        instructions=SCENARIO_SCORING_GUIDANCE,
        situation=request.situation or "(not provided)",
        question=request.question,
        assessed_competency=request.assessed_competency,
        best_response_rationale=request.best_response_rationale or "(not provided)",
        worst_response_rationale=request.worst_response_rationale or "(not provided)",
        answer_block=answer_block,
    )


__all__ = [
    "ANSWER_QUALITY_PROMPT",
    "SCENARIO_SCORING_PROMPT",
    "answer_quality_messages",
    "scenario_scoring_messages",
]
