"""Shared test fixtures: a scripted stand-in for the google-genai client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Callable, List, Optional

import pytest

from health_connect.cache import ResponseCache
from health_connect.config import Settings
from health_connect.gateway import GenerationGateway
from health_connect.server import create_app
from health_connect.sessions import SessionManager
from health_connect.store import InMemoryHistoryStore, InMemorySessionStore


def part(text: str, thought: bool = False) -> SimpleNamespace:
    return SimpleNamespace(text=text, thought=thought)


def chunk(*parts: SimpleNamespace) -> SimpleNamespace:
    """A provider stream chunk carrying the given parts."""
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))],
        text="".join(p.text for p in parts if not p.thought) or None,
    )


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModels:
    """Mimics ``client.aio.models`` with scripted replies.

    ``replies`` feeds ``generate_content``; ``streams`` feeds
    ``generate_content_stream`` (strings become text chunks, exceptions are
    raised mid-stream). ``responder`` builds a stream script from the call
    when ``streams`` is empty. ``fail_with`` makes the call itself raise.
    """

    def __init__(self) -> None:
        self.replies: List[Any] = []
        self.streams: List[List[Any]] = []
        self.responder: Optional[Callable[[list, Any], List[Any]]] = None
        self.fail_with: List[BaseException] = []
        self.calls: List[dict] = []

    def _record(self, kind: str, model: str, contents: list, config: Any) -> None:
        self.calls.append({"kind": kind, "model": model, "contents": contents, "config": config})
        if self.fail_with:
            raise self.fail_with.pop(0)

    async def generate_content(self, model: str, contents: list, config: Any = None):
        self._record("generate", model, contents, config)
        reply = self.replies.pop(0) if self.replies else "[]"
        return SimpleNamespace(text=reply)

    async def generate_content_stream(self, model: str, contents: list, config: Any = None):
        self._record("stream", model, contents, config)
        if self.streams:
            script = self.streams.pop(0)
        elif self.responder is not None:
            script = self.responder(contents, config)
        else:
            script = ["Hello", " there"]
        return _replay(script)


async def _replay(script: List[Any]):
    for item in script:
        if isinstance(item, BaseException):
            raise item
        yield chunk(part(item)) if isinstance(item, str) else item


class StalledUpstream:
    """A provider stream that sends ``texts`` and then never answers again."""

    def __init__(self, *texts: str) -> None:
        self._texts = list(texts)
        self.closed = False

    def __aiter__(self) -> "StalledUpstream":
        return self

    async def __anext__(self) -> SimpleNamespace:
        if self._texts:
            return chunk(part(self._texts.pop(0)))
        await asyncio.sleep(3600)
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


def serve_stream(fake_client: "FakeGenAIClient", upstream: Any) -> None:
    """Make every stream call on ``fake_client`` return ``upstream``."""

    async def open_stream(**kwargs):
        fake_client.models.calls.append({"kind": "stream", **kwargs})
        return upstream

    fake_client.aio.models.generate_content_stream = open_stream


class FakeGenAIClient:
    def __init__(self) -> None:
        self.models = FakeModels()
        self.aio = SimpleNamespace(models=self.models)


@pytest.fixture
def fake_client() -> FakeGenAIClient:
    return FakeGenAIClient()


@pytest.fixture
def provider(fake_client: FakeGenAIClient) -> FakeModels:
    return fake_client.models


@pytest.fixture
def gateway(fake_client: FakeGenAIClient) -> GenerationGateway:
    return GenerationGateway(fake_client, timeout=5.0, max_retries=0)


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def manager(session_store: InMemorySessionStore, gateway: GenerationGateway) -> SessionManager:
    return SessionManager(session_store, gateway)


@pytest.fixture
def app(gateway: GenerationGateway, session_store: InMemorySessionStore):
    return create_app(
        Settings(),
        gateway=gateway,
        cache=ResponseCache(ttl=3600),
        session_store=session_store,
        history_store=InMemoryHistoryStore(),
    )


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
