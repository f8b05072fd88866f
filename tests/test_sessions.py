"""Tests for the chat session manager."""

from __future__ import annotations

import asyncio
import logging

import pytest
from conftest import FakeClock, StalledUpstream, chunk, part, serve_stream

from health_connect.errors import NotFoundError, PersistenceError, UpstreamError, ValidationError
from health_connect.models import CHAT, DEFAULT_MODEL, SYMPTOM_CHECKER
from health_connect.prompts import (
    CHAT_INSTRUCTION,
    SYMPTOM_CHECKER_INSTRUCTION,
    THINKING_INSTRUCTION,
)
from health_connect.sessions import (
    DEFAULT_THINKING_BUDGET,
    SessionManager,
    build_generation_config,
    resolve_mode,
    resolve_model_type,
)
from health_connect.store import InMemorySessionStore


async def collect(reply) -> str:
    return "".join([text async for text in reply])


class FlakyStore(InMemorySessionStore):
    """Session store whose appends can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_appends = False

    async def push_message(self, session_id, message):
        if self.fail_appends:
            raise PersistenceError("store unavailable")
        return await super().push_message(session_id, message)


# ---------------------------------------------------------------------------
# policy
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("value,expected", [
    ("gemini-flash-lite-latest", ("gemini-flash-lite-latest", False)),
    ("gemini-flash-latest", ("gemini-flash-latest", False)),
    ("gemini-2.5-flash", ("gemini-2.5-flash", False)),
    ("gpt-4", (DEFAULT_MODEL, True)),
    ("", (DEFAULT_MODEL, False)),
    (None, (DEFAULT_MODEL, False)),
])
def test_resolve_model_type(value, expected):
    assert resolve_model_type(value) == expected


def test_resolve_model_type_uses_given_default():
    assert resolve_model_type(None, "gemini-flash-latest") == ("gemini-flash-latest", False)
    assert resolve_model_type("gpt-4", "gemini-flash-latest") == ("gemini-flash-latest", True)


@pytest.mark.parametrize("value,expected", [
    ("chat", (CHAT, False)),
    ("symptom-checker", (SYMPTOM_CHECKER, False)),
    (None, (CHAT, False)),
    ("", (CHAT, False)),
    ("diagnose", (CHAT, True)),
])
def test_resolve_mode(value, expected):
    assert resolve_mode(value) == expected


def test_symptom_checker_config_ignores_model():
    for model in ("gemini-flash-lite-latest", "gemini-2.5-flash"):
        config = build_generation_config(SYMPTOM_CHECKER, model)
        assert config.system_instruction == SYMPTOM_CHECKER_INSTRUCTION
        assert config.thinking_budget is None


def test_chat_config_on_plain_model():
    config = build_generation_config(CHAT, "gemini-flash-latest")
    assert config.system_instruction == CHAT_INSTRUCTION
    assert config.thinking_budget is None


def test_chat_config_on_reasoning_model():
    config = build_generation_config(CHAT, "gemini-2.5-flash")
    assert config.system_instruction == CHAT_INSTRUCTION + THINKING_INSTRUCTION
    assert config.thinking_budget == DEFAULT_THINKING_BUDGET == 24576


# ---------------------------------------------------------------------------
# lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_session_falls_back_on_unknown_values(manager, session_store):
    session = await manager.create_session("claude-9", "astrology")
    stored = await session_store.find_one(session.session_id)
    assert stored.model_type == DEFAULT_MODEL
    assert stored.mode == CHAT
    assert stored.messages == []


@pytest.mark.asyncio
async def test_create_session_store_failure_is_fatal(gateway):
    class BrokenStore(InMemorySessionStore):
        async def create(self, session):
            raise PersistenceError("down")

    manager = SessionManager(BrokenStore(), gateway)
    with pytest.raises(PersistenceError):
        await manager.create_session()


@pytest.mark.asyncio
async def test_unknown_session(manager, provider):
    with pytest.raises(NotFoundError):
        await manager.send_message("missing", "hello")
    with pytest.raises(NotFoundError):
        await manager.get_history("missing")
    assert provider.calls == []


@pytest.mark.asyncio
async def test_stream_matches_recorded_model_turn(manager, provider):
    session = await manager.create_session("gemini-flash-latest", "chat")
    provider.streams.append(["Stay ", "hydrated", " and rest."])

    streamed = await collect(await manager.send_message(session.session_id, "tips for a cold?"))

    history = await manager.get_history(session.session_id)
    assert [m.role for m in history] == ["user", "model"]
    assert history[0].text == "tips for a cold?"
    assert history[1].text == streamed == "Stay hydrated and rest."


@pytest.mark.asyncio
async def test_reasoning_chunks_are_recorded_with_marker(manager, provider):
    session = await manager.create_session("gemini-2.5-flash")
    provider.streams.append([chunk(part("user has a cold", thought=True)), "Rest."])

    streamed = await collect(await manager.send_message(session.session_id, "cold?"))

    assert streamed == "THINKING PROCESS: user has a cold\nRest."
    assert (await manager.get_history(session.session_id))[-1].text == streamed


@pytest.mark.asyncio
async def test_full_log_is_sent_with_derived_config(manager, provider):
    session = await manager.create_session("gemini-2.5-flash", "chat")
    provider.streams += [["first answer"], ["second answer"]]
    await collect(await manager.send_message(session.session_id, "first"))
    await collect(await manager.send_message(session.session_id, "second"))

    call = provider.calls[-1]
    assert call["model"] == "gemini-2.5-flash"
    assert call["contents"] == [
        {"role": "user", "parts": [{"text": "first"}]},
        {"role": "model", "parts": [{"text": "first answer"}]},
        {"role": "user", "parts": [{"text": "second"}]},
    ]
    assert call["config"].thinking_config.thinking_budget == 24576


@pytest.mark.asyncio
async def test_user_turn_is_saved_before_provider_fails(manager, provider):
    session = await manager.create_session()
    provider.fail_with.append(RuntimeError("provider down"))

    with pytest.raises(UpstreamError):
        await manager.send_message(session.session_id, "are you there?")

    history = await manager.get_history(session.session_id)
    assert [(m.role, m.text) for m in history] == [("user", "are you there?")]


@pytest.mark.asyncio
async def test_partial_stream_is_recorded(manager, provider):
    session = await manager.create_session()
    provider.streams.append(["Half an ", "answer", RuntimeError("reset")])

    streamed = await collect(await manager.send_message(session.session_id, "explain"))

    assert streamed == "Half an answer"
    history = await manager.get_history(session.session_id)
    assert history[-1].role == "model"
    assert history[-1].text == "Half an answer"


@pytest.mark.asyncio
async def test_empty_reply_adds_no_model_turn(manager, provider):
    session = await manager.create_session()
    provider.streams.append([RuntimeError("failed immediately")])

    assert await collect(await manager.send_message(session.session_id, "hi")) == ""
    history = await manager.get_history(session.session_id)
    assert [m.role for m in history] == ["user"]


@pytest.mark.asyncio
async def test_consecutive_user_turns_are_tolerated(manager, provider):
    session = await manager.create_session()
    provider.streams += [[RuntimeError("x")], ["ok"]]
    await collect(await manager.send_message(session.session_id, "one"))
    await collect(await manager.send_message(session.session_id, "two"))

    history = await manager.get_history(session.session_id)
    assert [m.role for m in history] == ["user", "user", "model"]
    assert [c["role"] for c in provider.calls[-1]["contents"]] == ["user", "user"]


@pytest.mark.asyncio
async def test_history_has_two_messages_per_turn(manager, provider):
    session = await manager.create_session()
    n = 4
    for i in range(n):
        provider.streams.append([f"reply {i}"])
        await collect(await manager.send_message(session.session_id, f"question {i}"))

    history = await manager.get_history(session.session_id)
    assert len(history) == 2 * n
    assert [m.text for m in history] == [
        text for i in range(n) for text in (f"question {i}", f"reply {i}")
    ]
    assert all(a.timestamp <= b.timestamp for a, b in zip(history, history[1:]))


@pytest.mark.asyncio
async def test_store_failures_do_not_break_the_stream(gateway, provider):
    store = FlakyStore()
    manager = SessionManager(store, gateway)
    session = await manager.create_session()
    store.fail_appends = True
    provider.streams.append(["still ", "streaming"])

    streamed = await collect(await manager.send_message(session.session_id, "hi"))

    assert streamed == "still streaming"
    # the in-flight turn still reached the provider
    assert provider.calls[-1]["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]
    assert await manager.get_history(session.session_id) == []


@pytest.mark.asyncio
async def test_disconnect_still_records_accumulated_text(manager, provider, session_store):
    session = await manager.create_session()
    provider.streams.append(["first ", "second ", "third"])

    reply = await manager.send_message(session.session_id, "go")
    assert await reply.__anext__() == "first "
    # client goes away after the first chunk
    await reply.aclose()
    await asyncio.sleep(0)

    history = await session_store.find_one(session.session_id)
    assert [(m.role, m.text) for m in history.messages] == [("user", "go"), ("model", "first ")]


@pytest.mark.asyncio
async def test_session_expiry_is_not_found(gateway):
    clock = FakeClock()
    manager = SessionManager(InMemorySessionStore(ttl=100, clock=clock), gateway)
    session = await manager.create_session()
    clock.advance(100)
    with pytest.raises(NotFoundError):
        await manager.get_history(session.session_id)


@pytest.mark.asyncio
async def test_blank_message_is_rejected(manager, provider):
    session = await manager.create_session()
    with pytest.raises(ValidationError):
        await manager.send_message(session.session_id, "   ")
    assert await manager.get_history(session.session_id) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_only_invalid_choices_are_logged(manager, caplog):
    caplog.set_level(logging.WARNING, logger="health_connect.sessions")
    await manager.create_session()
    assert caplog.records == []

    await manager.create_session("gpt-4")
    assert ["Invalid model" in r.getMessage() for r in caplog.records] == [True]


@pytest.mark.asyncio
async def test_configured_default_model(gateway, session_store):
    manager = SessionManager(session_store, gateway, default_model="gemini-flash-latest")
    assert (await manager.create_session()).model_type == "gemini-flash-latest"
    assert (await manager.create_session("bogus")).model_type == "gemini-flash-latest"
    assert (await manager.create_session("gemini-2.5-flash")).model_type == "gemini-2.5-flash"


class SlowSaveStore(InMemorySessionStore):
    """Holds model-turn appends until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.saving = asyncio.Event()
        self.release = asyncio.Event()

    async def push_message(self, session_id, message):
        if message.role == "model":
            self.saving.set()
            await self.release.wait()
        return await super().push_message(session_id, message)


@pytest.mark.asyncio
async def test_cancel_during_save_still_saves_and_closes(fake_client, gateway):
    store = SlowSaveStore()
    manager = SessionManager(store, gateway)
    session = await manager.create_session()
    upstream = StalledUpstream("first ")
    serve_stream(fake_client, upstream)

    reply = await manager.send_message(session.session_id, "go")
    received = []

    async def consume():
        async for text in reply:
            received.append(text)

    task = asyncio.ensure_future(consume())
    while not received:
        await asyncio.sleep(0)
    task.cancel()
    while not store.saving.is_set():
        await asyncio.sleep(0)
    # cancelled again while the model turn is being written
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert upstream.closed

    store.release.set()
    for _ in range(5):
        await asyncio.sleep(0)
    history = await manager.get_history(session.session_id)
    assert [(m.role, m.text) for m in history] == [("user", "go"), ("model", "first ")]
