"""Conversation context store — tiered server-side memory for chat sessions.

Two layers:

- ``SessionBackend``: where sessions live.  ``InMemorySessionBackend`` for
  single-instance deployments, ``RedisSessionBackend`` for multi-worker.
- ``ContextStore``: the operations the chat handler consumes
  (create / append / get_context / recompute_summaries), built on a backend.

Context tiers for a session with N messages::

    [0 ............ mid_start) [mid_start ..... recent_start) [recent_start .. N)
      historical summary          mid-range summary              recent, verbatim

``get_context`` assembles the summaries, a few older messages that are
lexically similar to the latest user query, and the recent window, then
trims the oldest recent messages until the token budget fits.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
import weakref
from abc import ABC, abstractmethod
from typing import Any, Sequence

import litellm
from pydantic import BaseModel, Field

from errors.exceptions import SessionNotFoundError
from models.base import CamelModel
from models.chat import ChatMessage, Role
from services.summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)

MESSAGE_TOKEN_OVERHEAD = 4
_WORD = re.compile(r"[a-z0-9']+")

# ── Data Models ──────────────────────────────────────────────


class ContextConfig(CamelModel):
    """Per-session context window settings; accepts camelCase overrides."""

    max_context_tokens: int = Field(default=8000, gt=0)
    recent_message_count: int = Field(default=10, gt=0)
    summary_update_interval: int = Field(default=5, gt=0)
    mid_range_window: int = Field(default=20, ge=0)
    max_summary_tokens: int = Field(default=500, gt=0)
    semantic_candidate_limit: int = Field(default=3, ge=0)
    semantic_similarity_threshold: float = Field(default=0.25, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls, settings: Any) -> ContextConfig:
        return cls(**{name: getattr(settings, name) for name in cls.model_fields})

    def merged(self, overrides: dict[str, Any] | None) -> ContextConfig:
        """Return a copy with recognized keys from *overrides* applied."""
        if not overrides:
            return self
        known = {}
        for name, field in type(self).model_fields.items():
            for key in (name, field.alias):
                if key and key in overrides:
                    known[name] = overrides[key]
        if not known:
            return self
        return type(self).model_validate({**self.model_dump(), **known})


class StoredSession(BaseModel):
    """Server-side state for one conversation."""

    session_id: str
    user_id: str | None = None
    config: ContextConfig = Field(default_factory=ContextConfig)
    messages: list[ChatMessage] = Field(default_factory=list)
    historical_summary: str = ""
    mid_summary: str = ""
    summarized_until: int = 0  # messages[:summarized_until] are folded into historical_summary
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


class AppendResult(BaseModel):
    needs_summary: bool = False
    message_count: int = 0


class ContextWindow(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)
    token_count: int = 0


# ── Backends ─────────────────────────────────────────────────


class SessionBackend(ABC):
    """Abstract session persistence — implement for different backends."""

    @abstractmethod
    async def get(self, session_id: str) -> StoredSession | None:
        """Retrieve a session by ID.  Returns None if not found or expired."""
        ...

    @abstractmethod
    async def save(self, session: StoredSession) -> None:
        """Persist a session (create or update)."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Remove all expired sessions.  Returns count removed."""
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemorySessionBackend(SessionBackend):
    """Process-local store with TTL expiration."""

    def __init__(self, ttl_seconds: int = 7 * 24 * 3600):
        self._store: dict[str, StoredSession] = {}
        self._ttl = ttl_seconds

    def _is_expired(self, session: StoredSession) -> bool:
        return (time.time() - session.updated_at) > self._ttl

    async def get(self, session_id: str) -> StoredSession | None:
        session = self._store.get(session_id)
        if session is None:
            return None
        if self._is_expired(session):
            del self._store[session_id]
            logger.debug("Session expired: %s", session_id)
            return None
        return session.model_copy(deep=True)

    async def save(self, session: StoredSession) -> None:
        self._store[session.session_id] = session.model_copy(deep=True)

    async def delete(self, session_id: str) -> None:
        self._store.pop(session_id, None)

    async def cleanup_expired(self) -> int:
        expired = [sid for sid, s in self._store.items() if self._is_expired(s)]
        for sid in expired:
            del self._store[sid]
        if expired:
            logger.info("Cleaned up %d expired chat sessions", len(expired))
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._store)


class RedisSessionBackend(SessionBackend):
    """Redis-backed store; expiry is delegated to Redis key TTLs."""

    _KEY_PREFIX = "chat-session:"

    def __init__(self, redis_url: str, ttl_seconds: int = 7 * 24 * 3600):
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )
        self._ttl = ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self._KEY_PREFIX}{session_id}"

    async def get(self, session_id: str) -> StoredSession | None:
        data = await self._redis.get(self._key(session_id))
        if data is None:
            return None
        try:
            return StoredSession.model_validate_json(data)
        except ValueError:
            logger.warning("Failed to deserialize session: %s", session_id)
            return None

    async def save(self, session: StoredSession) -> None:
        await self._redis.set(self._key(session.session_id), session.model_dump_json(), ex=self._ttl)

    async def delete(self, session_id: str) -> None:
        await self._redis.delete(self._key(session_id))

    async def cleanup_expired(self) -> int:
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except Exception:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._redis.aclose()


# ── Helpers ──────────────────────────────────────────────────


def generate_session_id() -> str:
    return f"sess-{uuid.uuid4().hex[:16]}"


def _tokenize(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


def jaccard_similarity(a: str, b: str) -> float:
    left, right = _tokenize(a), _tokenize(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


# ── Context Store ────────────────────────────────────────────


class ContextStore:
    """Session lifecycle and context assembly for chat turns."""

    def __init__(
        self,
        backend: SessionBackend,
        defaults: ContextConfig | None = None,
        summarizer: ConversationSummarizer | None = None,
        token_model: str = "gpt-4o-mini",
    ) -> None:
        self._backend = backend
        self._defaults = defaults or ContextConfig()
        self._summarizer = summarizer or ConversationSummarizer(
            max_summary_tokens=self._defaults.max_summary_tokens
        )
        self._token_model = token_model
        # Held only while an operation uses them; idle sessions keep no lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def backend(self) -> SessionBackend:
        return self._backend

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def _load(self, session_id: str) -> StoredSession:
        session = await self._backend.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # -- operations ----------------------------------------------------------

    async def create_session(
        self,
        user_id: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> str:
        session = StoredSession(
            session_id=generate_session_id(),
            user_id=user_id,
            config=self._defaults.merged(config),
        )
        await self._backend.save(session)
        return session.session_id

    async def append_message(self, session_id: str, role: Role, content: str) -> AppendResult:
        """Append one message; ``needs_summary`` flags a due summary refresh."""
        async with self._lock(session_id):
            session = await self._load(session_id)
            session.messages.append(ChatMessage(role=role, content=content))
            session.updated_at = time.time()
            await self._backend.save(session)

        count = len(session.messages)
        cfg = session.config
        needs_summary = (
            role == "assistant"
            and count >= cfg.recent_message_count
            and count % cfg.summary_update_interval == 0
        )
        return AppendResult(needs_summary=needs_summary, message_count=count)

    async def recompute_summaries(self, session_id: str) -> None:
        """Refresh the mid-range and historical summaries of a session."""
        session = await self._load(session_id)
        cfg = session.config
        count = len(session.messages)
        recent_start = max(0, count - cfg.recent_message_count)
        mid_start = max(0, recent_start - cfg.mid_range_window)

        mid_summary = await self._summarizer.summarize(session.messages[mid_start:recent_start])

        historical = session.historical_summary
        summarized_until = session.summarized_until
        if mid_start > summarized_until:
            historical = await self._summarizer.summarize(
                session.messages[summarized_until:mid_start],
                previous=session.historical_summary,
            )
            summarized_until = mid_start

        # Re-load under the lock so appends made while summarizing survive.
        async with self._lock(session_id):
            latest = await self._load(session_id)
            latest.mid_summary = mid_summary
            latest.historical_summary = historical
            latest.summarized_until = summarized_until
            await self._backend.save(latest)
        logger.info(
            "Recomputed summaries for %s (messages=%d, mid_start=%d, recent_start=%d)",
            session_id, count, mid_start, recent_start,
        )

    async def get_context(self, session_id: str) -> ContextWindow:
        session = await self._load(session_id)
        cfg = session.config
        recent_start = max(0, len(session.messages) - cfg.recent_message_count)
        older = session.messages[:recent_start]
        recent = list(session.messages[recent_start:])

        preamble: list[ChatMessage] = []
        if session.historical_summary:
            preamble.append(ChatMessage(
                role="system", content=f"Historical summary:\n{session.historical_summary}",
            ))
        if session.mid_summary:
            preamble.append(ChatMessage(
                role="system", content=f"Recent context:\n{session.mid_summary}",
            ))
        preamble.extend(self._semantic_matches(older, recent, cfg))

        while len(recent) > 1 and self.count_tokens(preamble + recent) > cfg.max_context_tokens:
            recent.pop(0)

        messages = preamble + recent
        return ContextWindow(messages=messages, token_count=self.count_tokens(messages))

    # -- internals -----------------------------------------------------------

    def _semantic_matches(
        self,
        older: Sequence[ChatMessage],
        recent: Sequence[ChatMessage],
        cfg: ContextConfig,
    ) -> list[ChatMessage]:
        """Older user/assistant messages most similar to the latest user query."""
        if not older or cfg.semantic_candidate_limit == 0:
            return []
        query = next((m.content for m in reversed(recent) if m.role == "user"), "")
        if not query:
            return []
        scored = [
            (jaccard_similarity(query, message.content), index)
            for index, message in enumerate(older)
            if message.role in ("user", "assistant")
        ]
        best = sorted(
            (item for item in scored if item[0] >= cfg.semantic_similarity_threshold),
            key=lambda item: (-item[0], item[1]),
        )[: cfg.semantic_candidate_limit]
        return [older[index] for _, index in sorted(best, key=lambda item: item[1])]

    def count_tokens(self, messages: Sequence[ChatMessage]) -> int:
        total = 0
        for message in messages:
            total += litellm.token_counter(model=self._token_model, text=message.content)
            total += MESSAGE_TOKEN_OVERHEAD
        return total

    async def delete_session(self, session_id: str) -> None:
        await self._backend.delete(session_id)
        self._locks.pop(session_id, None)

    async def cleanup_expired(self) -> int:
        return await self._backend.cleanup_expired()

    async def ping(self) -> bool:
        return await self._backend.ping()

    async def close(self) -> None:
        await self._backend.close()


# ── Factory & background cleanup ─────────────────────────────


def build_context_store(settings: Any) -> ContextStore:
    """Build the store described by *settings* (memory or redis backend)."""
    ttl = settings.session_ttl
    if settings.context_store_type == "redis" and settings.redis_url:
        backend: SessionBackend = RedisSessionBackend(settings.redis_url, ttl_seconds=ttl)
        logger.info("Initialized RedisSessionBackend (TTL=%ds)", ttl)
    else:
        backend = InMemorySessionBackend(ttl_seconds=ttl)
        logger.info("Initialized InMemorySessionBackend (TTL=%ds)", ttl)
    defaults = ContextConfig.from_settings(settings)
    return ContextStore(
        backend,
        defaults=defaults,
        summarizer=ConversationSummarizer(max_summary_tokens=defaults.max_summary_tokens),
        token_model=settings.openai_model,
    )


async def periodic_cleanup(store: ContextStore, interval_seconds: int = 300) -> None:
    """Lifespan task that periodically removes expired sessions."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await store.cleanup_expired()
        except Exception:
            logger.exception("Context store cleanup failed")
