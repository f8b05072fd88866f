"""
Chat session manager.

Owns the rules that turn a stored session into a provider call: which model
and mode a session may use, which system instruction and thinking budget a
turn gets, and when user and model turns are written to the store.

A turn goes through these steps:

1. load the session (``NotFoundError`` if absent or expired)
2. persist the user's message before the provider is contacted
3. derive the generation config from (mode, model)
4. send the whole message log to the provider as a stream
5. relay chunks to the caller as they arrive
6. persist whatever text accumulated as the model turn, even if the stream
   failed half-way or the client went away

Store failures in steps 2 and 6 are logged and never interrupt the reply.
The response cache is never used here: a conversational turn depends on
the whole history, not on the request payload.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional, Set, Tuple

from .errors import NotFoundError, PersistenceError, UpstreamError, ValidationError
from .gateway import ChunkStream, GenerationGateway, build_contents
from .models import (
    ALLOWED_MODELS,
    ALLOWED_MODES,
    CHAT,
    DEFAULT_MODEL,
    REASONING_MODEL,
    SYMPTOM_CHECKER,
    GenerationConfig,
    Message,
    Session,
)
from .prompts import CHAT_INSTRUCTION, SYMPTOM_CHECKER_INSTRUCTION, THINKING_INSTRUCTION
from .store import BaseSessionStore

logger = logging.getLogger(__name__)

DEFAULT_THINKING_BUDGET = 24576


def resolve_model_type(
    model_type: Optional[str], default: str = DEFAULT_MODEL
) -> Tuple[str, bool]:
    """Return ``(model, corrected)``.

    A missing model is the default without correction; an unknown one falls
    back to the default and is flagged.
    """
    if not model_type:
        return default, False
    if model_type in ALLOWED_MODELS:
        return model_type, False
    return default, True


def resolve_mode(mode: Optional[str]) -> Tuple[str, bool]:
    """Return ``(mode, corrected)``. A missing mode is plain ``chat``."""
    if not mode:
        return CHAT, False
    if mode in ALLOWED_MODES:
        return mode, False
    return CHAT, True


def build_generation_config(
    mode: str,
    model_type: str,
    thinking_budget: int = DEFAULT_THINKING_BUDGET,
) -> GenerationConfig:
    """Derive the provider config for a session.

    Symptom-checker sessions always get the triage instruction and no
    thinking budget. Chat sessions get the advisory instruction, plus the
    thinking directive and budget when running on the reasoning model.
    """
    if mode == SYMPTOM_CHECKER:
        return GenerationConfig(system_instruction=SYMPTOM_CHECKER_INSTRUCTION)
    if model_type == REASONING_MODEL:
        return GenerationConfig(
            system_instruction=CHAT_INSTRUCTION + THINKING_INSTRUCTION,
            thinking_budget=thinking_budget,
        )
    return GenerationConfig(system_instruction=CHAT_INSTRUCTION)


class SessionManager:
    """Creates sessions and drives streamed conversational turns."""

    def __init__(
        self,
        store: BaseSessionStore,
        gateway: GenerationGateway,
        thinking_budget: int = DEFAULT_THINKING_BUDGET,
        default_model: str = DEFAULT_MODEL,
    ):
        self.store = store
        self.gateway = gateway
        self.thinking_budget = thinking_budget
        self.default_model = default_model
        self._pending_saves: Set[asyncio.Future] = set()

    async def create_session(
        self,
        model_type: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> Session:
        model, model_corrected = resolve_model_type(model_type, self.default_model)
        if model_corrected:
            logger.warning("Invalid model %r requested, using %r", model_type, model)
        resolved_mode, mode_corrected = resolve_mode(mode)
        if mode_corrected:
            logger.warning("Invalid mode %r requested, using %r", mode, resolved_mode)

        session = Session(model_type=model, mode=resolved_mode)
        try:
            await self.store.create(session)
        except PersistenceError:
            logger.exception("Failed to save chat session %s", session.session_id)
            raise
        logger.info(
            "Created chat session %s (model=%s, mode=%s)",
            session.session_id, session.model_type, session.mode,
        )
        return session

    async def get_session(self, session_id: str) -> Session:
        session = await self.store.find_one(session_id)
        if session is None:
            raise NotFoundError("Chat session not found. It may have expired.")
        return session

    async def get_history(self, session_id: str) -> List[Message]:
        return (await self.get_session(session_id)).messages

    async def _append(self, session_id: str, message: Message) -> None:
        try:
            stored = await self.store.push_message(session_id, message)
        except PersistenceError:
            logger.exception("Failed to save %s message for session %s", message.role, session_id)
            return
        if not stored:
            logger.error("Session %s vanished before its %s message was saved", session_id, message.role)

    async def send_message(self, session_id: str, text: str) -> AsyncIterator[str]:
        """Start a turn and return an async iterator over the reply text.

        Everything that can fail before the first chunk (unknown session,
        provider refusing the call) raises here, while the caller can still
        answer with a proper error status.
        """
        if not text or not text.strip():
            raise ValidationError("Message is required")
        session = await self.get_session(session_id)

        user_message = Message(role="user", text=text)
        await self._append(session_id, user_message)
        session.messages.append(user_message)

        config = build_generation_config(session.mode, session.model_type, self.thinking_budget)
        contents = build_contents(session.messages)
        logger.info(
            "Streaming reply for session %s (model=%s, mode=%s, turns=%d)",
            session_id, session.model_type, session.mode, len(contents),
        )
        stream = await self.gateway.stream(session.model_type, contents, config)
        return self._relay(session_id, stream)

    async def _relay(self, session_id: str, stream: ChunkStream) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                yield chunk.render()
        except UpstreamError as exc:
            logger.error("Stream for session %s ended early: %s", session_id, exc.message)
        finally:
            try:
                if stream.text:
                    # A client disconnect cancels the relay, not the save.
                    save = asyncio.ensure_future(
                        self._append(session_id, Message(role="model", text=stream.text))
                    )
                    self._pending_saves.add(save)
                    save.add_done_callback(self._pending_saves.discard)
                    await asyncio.shield(save)
            finally:
                await stream.aclose()
