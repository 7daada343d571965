from agents.prompts import scenario_scoring_messages
from agents.types import ScenarioScoreRequest, ThreadTurn


def _request(**extra):
    data = {
        "situation": "A delayed order.",
        "question": "What do you do?",
        "best_response_rationale": "Apologise and act.",
        "worst_response_rationale": "Blame logistics.",
        "assessed_competency": "Customer Focus",
        "candidate_answer": "I call them.",
    }
    data.update(extra)
    return ScenarioScoreRequest(**data)


def test_single_answer_prompt_quotes_the_answer():
    system, human = scenario_scoring_messages(_request())
    assert system.type == "system"
    assert 'Candidate answer:\n"I call them."' in human.content
    assert "Worst response rationale: Blame logistics." in human.content


def test_thread_prompt_lists_every_turn():
    thread = [
        ThreadTurn(question="What do you do?", answer="I call them."),
        ThreadTurn(question="1.a) What first?", answer="", is_follow_up=True),
    ]
    _, human = scenario_scoring_messages(_request(conversation_thread=thread, has_multiple_responses=True))

    assert "1. [Original] Q: What do you do?" in human.content
    assert "2. [Follow-up] Q: 1.a) What first?" in human.content
    assert "A: (no answer)" in human.content
