import asyncio

from agents.types import AssessmentReport, CompetencyScore, ConversationEntry, ScenarioResult
from llm_gateway import LlmUnavailableError
from services.aggregation import aggregate_scores, build_report, performance_level
from storage.reports import insert_report

from conftest import analysis


def _entry(question, competency, scenario_id, *, follow_up=False, answer="An answer."):
    return ConversationEntry(
        question=question,
        answer=answer,
        situation="A workplace situation.",
        best_response_rationale="best",
        worst_response_rationale="worst",
        assessed_competency=competency,
        scenario_id=scenario_id,
        is_follow_up=follow_up,
    )


def test_mean_of_three_teamwork_scores_is_exactly_eight():
    results = [
        ScenarioResult(scenario_number=n, competency="Teamwork", score=s, rationale="r")
        for n, s in enumerate([6, 8, 10], start=1)
    ]
    assert aggregate_scores(results) == [CompetencyScore(name="Teamwork", score=8.0)]


def test_mean_is_rounded_to_one_decimal():
    results = [
        ScenarioResult(scenario_number=1, competency="Focus", score=7, rationale="r"),
        ScenarioResult(scenario_number=2, competency="Focus", score=8, rationale="r"),
        ScenarioResult(scenario_number=3, competency="Focus", score=8, rationale="r"),
    ]
    assert aggregate_scores(results)[0].score == 7.7


def test_single_competency_cluster_is_scored_holistically(fake_models):
    _, scorer = fake_models
    scorer.payloads.append(analysis(7.0))
    entries = [
        _entry("Situation: x\n\nQuestion: What do you do?", "Customer Focus", 1),
        _entry("1.a) What steps?", "Customer Focus", 1, follow_up=True),
    ]

    report = asyncio.run(build_report("s1", entries))

    assert len(scorer.calls) == 1
    request = scorer.calls[0]
    assert request.has_multiple_responses is True
    assert [t.is_follow_up for t in request.conversation_thread] == [False, True]
    assert report.source == "analysis"
    assert report.competencies == [CompetencyScore(name="Customer Focus", score=7.0)]
    assert report.scenario_results[0].holistic is True
    assert report.scenario_results[0].follow_up_count == 1
    assert "1 scenario(s) included follow-up questions" in report.summary


def test_mixed_competency_cluster_scores_each_entry(fake_models):
    _, scorer = fake_models
    scorer.payloads.extend([analysis(6.0), analysis(9.0)])
    entries = [
        _entry("Situation: x\n\nQuestion: Part one?", "Teamwork", 3),
        _entry("Situation: x\n\nQuestion: Part two?", "Integrity", 3),
    ]

    report = asyncio.run(build_report("s1", entries))

    assert [c.assessed_competency for c in scorer.calls] == ["Teamwork", "Integrity"]
    assert all(not c.conversation_thread for c in scorer.calls)
    assert {c.name: c.score for c in report.competencies} == {"Teamwork": 6.0, "Integrity": 9.0}


def test_holistic_failure_falls_back_to_entries(fake_models):
    _, scorer = fake_models
    scorer.payloads.extend([ValueError("bad payload"), analysis(5.0), analysis(7.0)])
    entries = [
        _entry("Situation: x\n\nQuestion: Q?", "Teamwork", 1),
        _entry("1.a) More?", "Teamwork", 1, follow_up=True),
    ]

    report = asyncio.run(build_report("s1", entries))

    assert len(scorer.calls) == 3
    assert report.competencies == [CompetencyScore(name="Teamwork", score=6.0)]


def test_failed_clusters_are_dropped(fake_models):
    _, scorer = fake_models
    scorer.payloads.extend([LlmUnavailableError("overloaded")] * 3 + [analysis(8.0)])
    entries = [
        _entry("Situation: a\n\nQuestion: A?", "Teamwork", 1),
        _entry("Situation: b\n\nQuestion: B?", "Integrity", 2),
    ]

    report = asyncio.run(build_report("s1", entries))

    assert [c.name for c in report.competencies] == ["Integrity"]
    assert "Integrity (8.0/10" in report.strengths


def test_zero_results_use_prior_report(fake_models):
    _, scorer = fake_models
    scorer.payloads.append(RuntimeError("boom"))
    prior = AssessmentReport(
        session_id="s1",
        competencies=[CompetencyScore(name="Teamwork", score=6.5)],
        strengths="s",
        weaknesses="w",
        summary="earlier",
    )
    insert_report(session_id="s1", user_id="u1", source="analysis", report=prior.model_dump(mode="json"))

    report = asyncio.run(build_report("s1", [_entry("Situation: a\n\nQuestion: A?", "Teamwork", 1)]))

    assert report.source == "prior_report"
    assert report.summary == "earlier"


def test_zero_results_without_prior_report_use_placeholder(fake_models):
    _, scorer = fake_models
    scorer.payloads.append(RuntimeError("boom"))
    entries = [
        _entry("Situation: a\n\nQuestion: A?", "Teamwork", 1),
        _entry("Situation: b\n\nQuestion: B?", "Teamwork", 2, answer=None),
    ]

    report = asyncio.run(build_report("s9", entries))

    assert report.source == "placeholder"
    assert report.competencies == [CompetencyScore(name="Participation", score=5.0)]
    assert report.summary


def test_narrative_splits_strengths_and_development_areas(fake_models):
    _, scorer = fake_models
    scorer.payloads.extend(
        [
            analysis(8.5, "Strong empathy. Took ownership. Offered a remedy. Followed up later."),
            analysis(4.0, "Avoided the conversation."),
        ]
    )
    entries = [
        _entry("Situation: a\n\nQuestion: A?", "Customer Focus", 1),
        _entry("Situation: b\n\nQuestion: B?", "Coaching & Mentoring", 2),
    ]

    report = asyncio.run(build_report("s1", entries))

    assert report.strengths.startswith("Customer Focus (8.5/10, from Scenario 1)")
    assert "Followed up later." not in report.strengths
    assert report.weaknesses.startswith("Coaching & Mentoring (4.0/10, from Scenario 2)")
    assert "Good" in report.summary


def test_performance_levels():
    assert performance_level(8.0) == "Excellent"
    assert performance_level(7.2) == "Very Good"
    assert performance_level(6.0) == "Good"
    assert performance_level(5.5) == "Satisfactory"
    assert performance_level(2.0) == "Needs Improvement"
