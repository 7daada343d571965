import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage.migrate import migrate
from config.settings import settings
from config.registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, bind_model


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    monkeypatch.setattr(settings, "CHECKPOINT_DIR", os.path.join(td.name, "checkpoints"), raising=False)
    monkeypatch.setattr(settings, "MEDIA_LOCAL_DIR", os.path.join(td.name, "media"), raising=False)
    monkeypatch.setattr(settings, "MEDIA_BACKEND", "local", raising=False)
    monkeypatch.setattr(settings, "SCENARIO_CATALOG_PATH", "", raising=False)
    monkeypatch.setattr(settings, "SCENARIO_LIMIT", 0, raising=False)
    monkeypatch.setattr(settings, "MAX_FOLLOW_UPS", 2, raising=False)
    monkeypatch.setattr(settings, "RETRY_BASE_SECONDS", 0.0, raising=False)
    monkeypatch.setattr(settings, "RETRY_MAX_SECONDS", 0.0, raising=False)
    migrate(db_path)
    try:
        yield
    finally:
        td.cleanup()


class ScriptedModel:
    """Fake evaluator returning queued payloads and recording every call."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.calls = []

    def __call__(self, request):
        self.calls.append(request)
        if not self.payloads:
            raise AssertionError("unexpected evaluator call")
        payload = self.payloads.pop(0)
        if isinstance(payload, BaseException):
            raise payload
        return payload


@pytest.fixture
def fake_models():
    quality = ScriptedModel()
    scorer = ScriptedModel()
    bind_model(ANSWER_QUALITY_KEY, quality)
    bind_model(SCENARIO_SCORER_KEY, scorer)
    return quality, scorer


def complete_verdict(score=8.0):
    return {
        "is_complete": True,
        "completion_score": score,
        "missing_aspects": [],
        "follow_up_question": None,
        "rationale": "covers the key points",
    }


def incomplete_verdict(question, score=4.0):
    return {
        "is_complete": False,
        "completion_score": score,
        "missing_aspects": ["specific steps"],
        "follow_up_question": question,
        "rationale": "lacks concrete actions",
    }


def analysis(score, rationale="Clear ownership of the problem. Offers a concrete remedy."):
    return {
        "score": score,
        "rationale": rationale,
        "strengths_observed": ["ownership"],
        "weaknesses_observed": [],
        "competency_evidence": "takes responsibility",
    }
