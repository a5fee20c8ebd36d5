"""Shared fixtures: a seeded in-memory store, fake model clients and a fake embedder."""

import asyncio
import json
from typing import (
    Any,
    Callable,
    List,
    Sequence,
)

import pytest

from joi.agent.tool_executor import ToolExecutor
from joi.config import Settings
from joi.core.llm import BaseModelClient
from joi.core.schema import AgentAction
from joi.services.embeddings import EmbeddingService
from joi.services.identity import StoreIdentityProvider
from joi.store.memory_store import InMemoryDataStore
from joi.tools import build_tool_registry

ADMIN_ID = "user-admin"
AGENT_ID = "user-agent"
BOB_ID = "user-bob"
CAROL_ID = "user-carol"
DAVE_ID = "user-dave"
ACME_ID = "org-acme"
GLOBEX_ID = "org-globex"

SEED = {
    "organizations": [
        {"id": ACME_ID, "name": "Acme", "adminId": ADMIN_ID},
        {"id": GLOBEX_ID, "name": "Globex", "adminId": None},
    ],
    "users": [
        {"id": ADMIN_ID, "email": "ada@acme.test", "firstName": "Ada", "lastName": "Admin", "role": "admin"},
        {"id": AGENT_ID, "email": "alice@acme.test", "firstName": "Alice", "lastName": "Agent", "role": "agent"},
        {"id": BOB_ID, "email": "bob@example.com", "firstName": "Bob", "lastName": "Builder", "role": "customer"},
        {"id": CAROL_ID, "email": "carol@example.com", "firstName": "Carol", "lastName": "Jones", "role": "customer"},
        {"id": DAVE_ID, "email": "dave@globex.test", "firstName": "Dave", "lastName": "Smith", "role": "customer"},
    ],
    "organization_members": [
        {"organizationId": ACME_ID, "userId": ADMIN_ID, "role": "admin"},
        {"organizationId": ACME_ID, "userId": AGENT_ID, "role": "agent"},
        {"organizationId": ACME_ID, "userId": BOB_ID, "role": "customer"},
        {"organizationId": ACME_ID, "userId": CAROL_ID, "role": "customer"},
        {"organizationId": GLOBEX_ID, "userId": DAVE_ID, "role": "customer"},
    ],
    "tickets": [
        {
            "id": "ticket-1",
            "title": "Cannot log in",
            "description": "Login page rejects my password",
            "priorityLevel": "high",
            "status": "open",
            "customerId": BOB_ID,
            "organizationId": ACME_ID,
            "createdAt": "2024-03-01T10:00:00Z",
            "updatedAt": "2024-03-01T10:00:00Z",
        },
        {
            "id": "ticket-2",
            "title": "Wrong invoice",
            "description": "The March invoice total is wrong",
            "priorityLevel": "low",
            "status": "resolved",
            "customerId": CAROL_ID,
            "assignedTo": AGENT_ID,
            "organizationId": ACME_ID,
            "createdAt": "2024-03-05T10:00:00Z",
            "updatedAt": "2024-03-06T10:00:00Z",
        },
        {
            "id": "ticket-3",
            "title": "Globex outage",
            "description": "Nothing loads",
            "priorityLevel": "urgent",
            "customerId": DAVE_ID,
            "organizationId": GLOBEX_ID,
            "createdAt": "2024-03-07T10:00:00Z",
            "updatedAt": "2024-03-07T10:00:00Z",
        },
    ],
    "messages": [
        {
            "id": "msg-1",
            "ticketId": "ticket-1",
            "senderId": BOB_ID,
            "content": "I cannot log in to my account since yesterday",
            "createdAt": "2024-03-01T10:00:00Z",
        },
        {
            "id": "msg-2",
            "ticketId": "ticket-2",
            "senderId": CAROL_ID,
            "content": "The invoice total looks wrong to me",
            "createdAt": "2024-03-05T10:00:00Z",
        },
    ],
}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeModelClient(BaseModelClient):
    """
    Replays scripted replies and records every prompt it was sent.

    A reply may be a string, an exception instance (raised), or a callable ``prompt -> str``.
    """

    def __init__(self, *replies: Any, delay: float = 0.0) -> None:
        super().__init__(Settings())
        self.replies: List[Any] = list(replies)
        self.prompts: List[str] = []
        self.delay = delay

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.replies:
            raise AssertionError("FakeModelClient ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class FakeEmbeddingService(EmbeddingService):
    """Deterministic bag-of-words embedding; texts sharing words score as similar."""

    DIM = 64

    def __init__(self) -> None:
        super().__init__(Settings())

    async def embed(self, text: str) -> List[float]:
        vector = [0.0] * self.DIM
        for word in text.lower().split():
            word = word.strip(".,!?'\"")
            if word:
                vector[sum(ord(c) for c in word) % self.DIM] += 1.0
        return vector


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def config() -> Settings:
    return Settings(
        LLM_TIMEOUT_SECONDS=2.0,
        TOOL_TIMEOUT_SECONDS=2.0,
        SIMILARITY_THRESHOLD=0.5,
        SIMILARITY_MATCH_COUNT=5,
    )


@pytest.fixture
def seed_file(tmp_path):
    path = tmp_path / "seed.json"
    path.write_text(json.dumps(SEED), encoding="utf-8")
    return path


@pytest.fixture
def store(seed_file) -> InMemoryDataStore:
    return InMemoryDataStore.from_json(seed_file)


@pytest.fixture
def embedder() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def registry():
    return build_tool_registry()


@pytest.fixture
def executor(registry, store, embedder, config) -> ToolExecutor:
    return ToolExecutor(registry, store, embedder, config)


@pytest.fixture
def identity_for(store) -> Callable[[str], StoreIdentityProvider]:
    def _make(user_id: str) -> StoreIdentityProvider:
        return StoreIdentityProvider(store, user_id)

    return _make


@pytest.fixture
def run_tool(executor, identity_for):
    """``await run_tool(user_id, tool_name, **input) -> ToolResult``"""

    async def _run(user_id: str, tool: str, **tool_input: Any):
        return await executor.execute(AgentAction(tool=tool, input=tool_input), identity_for(user_id))

    return _run


def intent_json(intent: str, **parameters: Any) -> str:
    """Build an intent-analyzer reply."""
    return json.dumps({"intent": intent, "explanation": "test", "parameters": parameters})


def plan_json(steps: Sequence[dict]) -> str:
    """Build a planner reply (bare array form)."""
    return json.dumps(list(steps))
