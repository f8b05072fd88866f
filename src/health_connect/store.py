"""
Durable stores for chat sessions and health history.

Two backends share one interface: an in-memory store for development and
tests, and a Redis store for deployments. A session is append-only; the
only mutation after creation is pushing a message onto its log, and that
push is a single atomic operation in both backends.
"""

import json
import time
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .errors import PersistenceError
from .models import HealthHistoryEntry, Message, Session

logger = logging.getLogger(__name__)

SESSION_TTL = 60 * 60 * 24 * 30  # 30 days

_SESSION_PREFIX = "health-connect:session:"
_HISTORY_PREFIX = "health-connect:history:"


class BaseSessionStore(ABC):
    """Interface for chat session backends."""

    @abstractmethod
    async def create(self, session: Session) -> None:
        """Persist a new session."""

    @abstractmethod
    async def find_one(self, session_id: str) -> Optional[Session]:
        """Load a session with its full message log, or None if absent/expired."""

    @abstractmethod
    async def push_message(self, session_id: str, message: Message) -> bool:
        """Append one message. Returns False if the session does not exist."""


class BaseHistoryStore(ABC):
    """Interface for health history backends."""

    @abstractmethod
    async def save(self, entry: HealthHistoryEntry) -> None:
        """Store one history entry."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[HealthHistoryEntry]:
        """All entries for a user, newest first."""


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemorySessionStore(BaseSessionStore):
    """Process-local session store with lazy TTL expiry."""

    def __init__(self, ttl: float = SESSION_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._expires: Dict[str, float] = {}

    def _live(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._clock() >= self._expires[session_id]:
            del self._sessions[session_id]
            del self._expires[session_id]
            return None
        return session

    async def create(self, session: Session) -> None:
        self._sessions[session.session_id] = session.model_copy(deep=True)
        self._expires[session.session_id] = self._clock() + self.ttl

    async def find_one(self, session_id: str) -> Optional[Session]:
        session = self._live(session_id)
        return session.model_copy(deep=True) if session is not None else None

    async def push_message(self, session_id: str, message: Message) -> bool:
        session = self._live(session_id)
        if session is None:
            return False
        session.messages.append(message.model_copy())
        return True

    def __len__(self) -> int:
        return len(self._sessions)


class InMemoryHistoryStore(BaseHistoryStore):

    def __init__(self):
        self._entries: Dict[str, List[HealthHistoryEntry]] = {}

    async def save(self, entry: HealthHistoryEntry) -> None:
        self._entries.setdefault(entry.user_id, []).append(entry)

    async def list_for_user(self, user_id: str) -> List[HealthHistoryEntry]:
        return sorted(self._entries.get(user_id, []), key=lambda e: e.date, reverse=True)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _redis_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except RedisError as exc:
        raise PersistenceError(f"Redis {action} failed: {exc}") from exc


class RedisSessionStore(BaseSessionStore):
    """Redis-backed session store.

    A session is two keys: ``<prefix><id>`` holds the session document
    without messages, ``<prefix><id>:messages`` is a list of message JSON
    documents appended with RPUSH. Both expire 30 days after creation.
    """

    def __init__(self, client: aioredis.Redis, ttl: int = SESSION_TTL):
        self._client = client
        self.ttl = ttl

    @classmethod
    def from_url(cls, url: str, ttl: int = SESSION_TTL) -> "RedisSessionStore":
        return cls(aioredis.Redis.from_url(url, decode_responses=True), ttl=ttl)

    @staticmethod
    def _keys(session_id: str):
        key = f"{_SESSION_PREFIX}{session_id}"
        return key, f"{key}:messages"

    async def create(self, session: Session) -> None:
        key, messages_key = self._keys(session.session_id)
        doc = session.model_dump_json(by_alias=True, exclude={"messages"})
        async with _redis_errors("create"):
            created = await self._client.set(key, doc, ex=self.ttl, nx=True)
            if not created:
                raise PersistenceError(f"Session {session.session_id} already exists")
            if session.messages:
                await self._client.rpush(
                    messages_key, *(m.model_dump_json() for m in session.messages)
                )
                await self._client.expire(messages_key, self.ttl)

    async def find_one(self, session_id: str) -> Optional[Session]:
        key, messages_key = self._keys(session_id)
        async with _redis_errors("read"):
            doc = await self._client.get(key)
            if doc is None:
                return None
            raw_messages = await self._client.lrange(messages_key, 0, -1)
        data = json.loads(doc)
        data["messages"] = [json.loads(m) for m in raw_messages]
        return Session.model_validate(data)

    async def push_message(self, session_id: str, message: Message) -> bool:
        key, messages_key = self._keys(session_id)
        async with _redis_errors("append"):
            remaining = await self._client.ttl(key)
            # -2: key missing; -1: no expiry set (should not happen)
            if remaining == -2:
                return False
            await self._client.rpush(messages_key, message.model_dump_json())
            await self._client.expire(messages_key, remaining if remaining > 0 else self.ttl)
        return True


class RedisHistoryStore(BaseHistoryStore):
    """Health history as one Redis list per user, newest entry first."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisHistoryStore":
        return cls(aioredis.Redis.from_url(url, decode_responses=True))

    async def save(self, entry: HealthHistoryEntry) -> None:
        async with _redis_errors("save"):
            await self._client.lpush(f"{_HISTORY_PREFIX}{entry.user_id}", entry.model_dump_json())

    async def list_for_user(self, user_id: str) -> List[HealthHistoryEntry]:
        async with _redis_errors("read"):
            raw = await self._client.lrange(f"{_HISTORY_PREFIX}{user_id}", 0, -1)
        return [HealthHistoryEntry.model_validate_json(item) for item in raw]
