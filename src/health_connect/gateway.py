"""
Generation gateway, the single point of contact with the Gemini API.

Wraps a ``google.genai.Client`` and exposes two contracts:

* ``generate``: one complete text result (single-shot analysis)
* ``stream``:   a lazy ``ChunkStream`` of normalized ``Chunk`` objects

Provider chunks come in more than one shape (text parts, thought parts,
a bare ``text`` attribute that may be a value or a callable). All of that is
resolved in ``normalize_chunk`` so nothing past this module has to care.
"""

import asyncio
import logging
import random
from collections import deque
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from google import genai
from google.genai import types

from .errors import UpstreamError
from .models import Chunk, GenerationConfig, Message

logger = logging.getLogger(__name__)

Contents = List[Dict[str, Any]]


def user_turn(text: str) -> Dict[str, Any]:
    return {"role": "user", "parts": [{"text": text}]}


def build_contents(messages: Iterable[Message]) -> Contents:
    """Map a message log onto the provider's turn format, keeping order and role."""
    return [{"role": m.role, "parts": [{"text": m.text}]} for m in messages]


def build_provider_config(config: Optional[GenerationConfig]) -> Optional[types.GenerateContentConfig]:
    if config is None:
        return None
    kwargs: Dict[str, Any] = {}
    if config.system_instruction:
        kwargs["system_instruction"] = config.system_instruction
    if config.thinking_budget is not None:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=config.thinking_budget)
    return types.GenerateContentConfig(**kwargs)


def normalize_chunk(raw: Any) -> List[Chunk]:
    """Translate one provider stream chunk into zero or more ``Chunk``s.

    Thought parts become ``reasoning`` chunks; other text parts become
    ``text`` chunks, in the order the provider sent them. When the chunk has
    no parts at all, fall back to its ``text`` accessor.
    """
    candidates = getattr(raw, "candidates", None) or []
    content = getattr(candidates[0], "content", None) if candidates else None
    parts = getattr(content, "parts", None) or []

    if parts:
        chunks = []
        for part in parts:
            text = getattr(part, "text", None)
            if not text:
                continue
            kind = "reasoning" if getattr(part, "thought", False) else "text"
            chunks.append(Chunk(text=text, kind=kind))
        return chunks

    text = getattr(raw, "text", None)
    if callable(text):
        text = text()
    return [Chunk(text=text)] if text else []


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.TimeoutError):
        return True
    code = getattr(exc, "code", None)
    return isinstance(code, int) and (code == 429 or code >= 500)


class ChunkStream:
    """Async iterator over normalized chunks of one streamed reply.

    ``text`` always holds the rendered text of every chunk handed out so
    far. If the upstream fails mid-way, iteration raises ``UpstreamError``
    with that text attached as ``partial_text``.
    """

    def __init__(self, upstream: AsyncIterator[Any], timeout: Optional[float] = None):
        self._upstream = upstream.__aiter__()
        self._timeout = timeout
        self._pending: Deque[Chunk] = deque()
        self._parts: List[str] = []
        self._done = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> Chunk:
        while not self._pending:
            if self._done:
                raise StopAsyncIteration
            try:
                raw = await self._read()
            except StopAsyncIteration:
                self._done = True
                raise
            except Exception as exc:
                self._done = True
                raise UpstreamError(
                    f"Model stream failed: {exc}", partial_text=self.text
                ) from exc
            self._pending.extend(normalize_chunk(raw))

        chunk = self._pending.popleft()
        self._parts.append(chunk.render())
        return chunk

    async def _read(self) -> Any:
        if self._timeout is None:
            return await self._upstream.__anext__()
        return await asyncio.wait_for(self._upstream.__anext__(), self._timeout)

    async def aclose(self) -> None:
        self._done = True
        close = getattr(self._upstream, "aclose", None)
        if close is not None:
            await close()


class GenerationGateway:
    """Calls the model provider with a bounded timeout and retry policy."""

    def __init__(
        self,
        client: Any,
        timeout: Optional[float] = 120.0,
        max_retries: int = 2,
        backoff: float = 1.0,
    ):
        """
        Args:
            client: A ``google.genai.Client`` (or anything exposing the same
                ``client.aio.models`` surface).
            timeout: Seconds allowed per provider call and per stream read.
                None disables the bound.
            max_retries: Extra attempts for rate-limit, 5xx and timeout
                failures when opening a call. Streams are never resumed.
            backoff: Base delay in seconds, doubled on every retry.
        """
        self._client = client
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff

    @classmethod
    def from_api_key(cls, api_key: Optional[str], **kwargs: Any) -> "GenerationGateway":
        return cls(genai.Client(api_key=api_key), **kwargs)

    async def _call(self, fn: Callable[[], Awaitable[Any]], what: str) -> Any:
        attempt = 0
        while True:
            try:
                if self.timeout is None:
                    return await fn()
                return await asyncio.wait_for(fn(), self.timeout)
            except Exception as exc:
                attempt += 1
                if not _is_retryable(exc) or attempt > self.max_retries:
                    logger.error("%s failed after %d attempt(s): %r", what, attempt, exc)
                    raise UpstreamError(f"Failed to get a response from the AI model: {exc}") from exc
                delay = self.backoff * (2 ** (attempt - 1)) * (0.5 + random.random())
                logger.warning(
                    "%s failed (%r), retry %d/%d in %.1fs",
                    what, exc, attempt, self.max_retries, delay,
                )
                await asyncio.sleep(delay)

    async def generate(
        self,
        model: str,
        contents: Contents,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        """Single-shot generation. Returns the complete response text."""
        provider_config = build_provider_config(config)
        response = await self._call(
            lambda: self._client.aio.models.generate_content(
                model=model, contents=contents, config=provider_config,
            ),
            f"generate_content({model})",
        )
        text = getattr(response, "text", None)
        if callable(text):
            text = text()
        if not isinstance(text, str) or not text:
            raise UpstreamError("The AI model returned an empty or unreadable response")
        return text

    async def stream(
        self,
        model: str,
        contents: Contents,
        config: Optional[GenerationConfig] = None,
    ) -> ChunkStream:
        """Open a streamed generation. Setup failures raise ``UpstreamError``."""
        provider_config = build_provider_config(config)
        upstream = await self._call(
            lambda: self._client.aio.models.generate_content_stream(
                model=model, contents=contents, config=provider_config,
            ),
            f"generate_content_stream({model})",
        )
        return ChunkStream(upstream, timeout=self.timeout)
