"""Tests for the HTTP API."""

import pytest
from conftest import (
    BOB_ID,
    FakeModelClient,
    intent_json,
    plan_json,
)
from fastapi.testclient import TestClient

from joi.agent.intent_analyzer import IntentAnalyzer
from joi.agent.orchestrator import TicketAgent
from joi.agent.response_generator import ResponseGenerator
from joi.agent.tool_planner import ToolPlanner
from joi.api.app import (
    app,
    get_agent,
    get_store,
)


@pytest.fixture
def client(store, executor, registry, config):
    agent = TicketAgent(
        analyzer=IntentAnalyzer(FakeModelClient(intent_json("GREETING")), config),
        planner=ToolPlanner(FakeModelClient(plan_json([{"tool": "getSystemInfo", "input": {}}])), registry, config),
        executor=executor,
        responder=ResponseGenerator(FakeModelClient("Hi Bob, I'm Joi!"), config),
    )
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_agent] = lambda: agent
    # Not used as a context manager, so the lifespan (model loading, indexing) does not run
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_empty_query_is_rejected(client) -> None:
    response = client.post("/agent", json={"query": "   "}, headers={"X-User-Id": BOB_ID})

    assert response.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"X-User-Id": "user-nobody"}])
def test_unknown_or_missing_caller_is_unauthorized(client, headers) -> None:
    response = client.post("/agent", json={"query": "hello"}, headers=headers)

    assert response.status_code == 401


def test_agent_round_trip(client) -> None:
    payload = {
        "query": "Hello!",
        "history": [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}],
    }
    response = client.post("/agent", json=payload, headers={"X-User-Id": BOB_ID})

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "Hi Bob, I'm Joi!"
    assert body["state"]["status"] == "DONE"
    assert body["state"]["transitions"][-1] == "DONE"
    assert body["state"]["context"]["systemInfo"]["name"] == "Joi"
    assert len(body["state"]["context"]["conversationHistory"]) == 2


def test_malformed_history_is_rejected(client) -> None:
    response = client.post(
        "/agent", json={"query": "hi", "history": [{"role": "system", "content": "x"}]}, headers={"X-User-Id": BOB_ID}
    )

    assert response.status_code == 422
