import asyncio
import json

from config.settings import settings
from scenarios.catalog import FALLBACK_SCENARIOS, load_catalog
from services.follow_up import Phase
from services.partial_submissions import PartialSubmissionService
from services.sessions import (
    AssessmentSession,
    check_recovery,
    finalize_session,
    load_session,
    resume_session,
    start_session,
)
from storage import partials
from storage.checkpoints import delete_checkpoint, load_checkpoint
from storage.reports import latest_report

from conftest import analysis, complete_verdict, incomplete_verdict


def test_start_session_uses_catalog_and_checkpoints():
    state = start_session("u1", candidate_name="Dana")

    assert state.session_id.startswith("session_")
    assert [e.scenario_id for e in state.entries] == [s.id for s in FALLBACK_SCENARIOS]
    assert load_session(state.session_id).candidate_name == "Dana"


def test_answers_are_persisted_behind_the_controller(fake_models):
    quality, _ = fake_models
    quality.payloads.append(incomplete_verdict("What would you do first?"))
    state = start_session("u1", candidate_name="Dana", session_id="s-live")

    async def go():
        session = AssessmentSession(state)
        result = await session.submit_answer(0, "I would call them.")
        saved = await session.drain()
        return result, saved

    result, saved = asyncio.run(go())

    assert result.follow_up_inserted
    assert [r.success for r in saved] == [True]
    record = partials.fetch_for_session("s-live")[0]
    assert record["question_index"] == 0
    assert record["total_questions"] == 3
    assert record["answer"] == "I would call them."
    assert record["candidate_name"] == "Dana"
    assert load_checkpoint("s-live").total_questions == 3


def test_failed_save_does_not_block_next_question(fake_models, monkeypatch):
    quality, _ = fake_models
    quality.payloads.append(complete_verdict())

    def boom(*_args, **_kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(partials, "insert_partial", boom)
    state = start_session("u1", session_id="s-offline")

    async def go():
        session = AssessmentSession(state)
        result = await session.submit_answer(0, "An answer.")
        return result, await session.drain()

    result, saved = asyncio.run(go())

    assert result.next_index == 1
    assert saved[0].success is False and saved[0].should_retry is True


def test_resume_from_checkpoint_moves_to_first_unanswered(fake_models):
    quality, _ = fake_models
    quality.payloads.append(complete_verdict())
    state = start_session("u1", session_id="s-resume")

    async def go():
        session = AssessmentSession(state)
        await session.submit_answer(0, "Answered.")
        await session.drain()

    asyncio.run(go())
    resumed = resume_session("s-resume")

    assert resumed.current_index == 1
    assert resumed.phase is Phase.AWAITING_ANSWER
    assert resumed.entries[0].answer == "Answered."


def test_resume_from_partials_rebuilds_history_and_counters():
    service = PartialSubmissionService()
    state = start_session("u1", candidate_name="Dana", session_id="s-lost")
    base = state.entries[0].model_copy(update={"answer": "Call them."})
    follow_up = base.model_copy(update={"question": "1.a) What first?", "answer": "Apologise.", "is_follow_up": True})
    service.save_question_answer("s-lost", "u1", 0, 3, base, candidate_name="Dana")
    service.save_question_answer("s-lost", "u1", 1, 3, follow_up, candidate_name="Dana")
    delete_checkpoint("s-lost")

    resumed = resume_session("s-lost")

    assert resumed.total_questions == 3
    assert [e.is_follow_up for e in resumed.entries] == [False, True, False]
    assert resumed.entries[2].scenario_id == FALLBACK_SCENARIOS[1].id
    assert resumed.follow_up_counts == {1: 1}
    assert resumed.current_index == 2
    assert resumed.candidate_name == "Dana"
    assert check_recovery("u1").session_id == "s-lost"


def test_resume_unknown_session_returns_none():
    assert resume_session("missing") is None


def test_finalize_persists_report_and_completes_partials(fake_models):
    quality, scorer = fake_models
    quality.payloads.extend([complete_verdict(), complete_verdict()])
    scorer.payloads.extend([analysis(8.0), analysis(6.0)])
    state = start_session("u1", session_id="s-final")

    async def go():
        session = AssessmentSession(state)
        await session.submit_answer(0, "Own it and fix it.")
        await session.submit_answer(1, "Meet privately and listen.")
        await session.drain()

    asyncio.run(go())
    report = asyncio.run(finalize_session("s-final"))

    assert report.source == "analysis"
    assert {c.name: c.score for c in report.competencies} == {"Customer Focus": 8.0, "Coaching & Mentoring": 6.0}
    assert latest_report("s-final")["session_id"] == "s-final"
    assert all(r["is_complete"] for r in partials.fetch_for_session("s-final"))
    assert load_checkpoint("s-final") is None
    assert check_recovery("u1") is None


def _answer_first_then_lose_checkpoint(state):
    async def go():
        session = AssessmentSession(state)
        await session.submit_answer(0, "Own the problem.")
        await session.drain()

    asyncio.run(go())
    delete_checkpoint(state.session_id)


def test_resume_from_partials_keeps_the_session_follow_up_cap(fake_models, monkeypatch):
    quality, _ = fake_models
    monkeypatch.setattr(settings, "MAX_FOLLOW_UPS", 0)
    state = start_session("u1", session_id="s-capped")
    _answer_first_then_lose_checkpoint(state)
    monkeypatch.setattr(settings, "MAX_FOLLOW_UPS", 2)

    resumed = resume_session("s-capped")

    assert resumed.max_follow_ups == 0

    async def go():
        return await AssessmentSession(resumed).submit_answer(1, "Meet privately.")

    result = asyncio.run(go())
    assert result.follow_up_inserted is False
    assert quality.calls == []


def test_resume_from_partials_without_stored_cap_uses_settings(monkeypatch):
    monkeypatch.setattr(settings, "MAX_FOLLOW_UPS", 1)
    state = start_session("u1", session_id="s-legacy")
    PartialSubmissionService().save_question_answer(
        "s-legacy", "u1", 0, 2, state.entries[0].model_copy(update={"answer": "Call them."})
    )
    delete_checkpoint("s-legacy")

    assert resume_session("s-legacy").max_follow_ups == 1


def test_resume_from_partials_keeps_the_selected_scenarios(fake_models, tmp_path, monkeypatch):
    quality, _ = fake_models
    quality.payloads.append(complete_verdict())
    catalog_path = tmp_path / "catalog.json"
    catalog_path.write_text(
        json.dumps(
            {
                "scenarios": [
                    {
                        "id": n,
                        "situation": f"Situation number {n} at work.",
                        "question": f"What would you do in case {n}?",
                        "assessed_competency": f"Competency {n}",
                    }
                    for n in range(1, 6)
                ],
                "settings": {"number_of_questions": 2},
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(settings, "SCENARIO_CATALOG_PATH", str(catalog_path))
    by_id = {s.id: s for s in load_catalog().scenarios}
    state = start_session("u1", session_id="s-subset", scenarios=[by_id[4], by_id[2]])
    _answer_first_then_lose_checkpoint(state)

    resumed = resume_session("s-subset")

    assert [e.scenario_id for e in resumed.entries] == [4, 2]
    assert [s.id for s in resumed.base_scenarios] == [4, 2]
    assert resumed.current_index == 1
    record = partials.fetch_for_session("s-subset")[0]
    assert record["scenario_ids"] == [4, 2]
    assert record["max_follow_ups"] == 2
