import logging

from fastapi.testclient import TestClient

from api_server import create_app
from config import registry
from config.registry import ANSWER_QUALITY_KEY, SCENARIO_SCORER_KEY, bind_model, get_model


def test_health_and_startup_without_models():
    with TestClient(create_app(bind_models=False)) as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_startup_binds_configured_routes():
    sentinel = object()
    bind_model(SCENARIO_SCORER_KEY, sentinel)

    with TestClient(create_app()):
        assert get_model(SCENARIO_SCORER_KEY) is not sentinel


def test_startup_warns_about_unbound_evaluators(monkeypatch, caplog):
    monkeypatch.setattr(registry, "_REGISTRY", {SCENARIO_SCORER_KEY: object()})

    with caplog.at_level(logging.WARNING, logger="api_server"):
        with TestClient(create_app(bind_models=False)):
            pass

    warned = [r.getMessage() for r in caplog.records if r.name == "api_server"]
    assert warned == [f"No evaluator bound for {ANSWER_QUALITY_KEY}"]
