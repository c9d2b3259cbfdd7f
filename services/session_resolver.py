"""Resolve the conversation session for an incoming chat request."""

from __future__ import annotations

import logging
from typing import Any

from services.context_store import ContextStore

logger = logging.getLogger(__name__)


async def resolve_session(
    store: ContextStore,
    session_id: str | None,
    user_id: str | None = None,
    config: dict[str, Any] | None = None,
) -> str:
    """Reuse *session_id* as-is, or create a new session in *store*.

    No existence check is made for a supplied id; the store is the source of
    truth and rejects unknown ids on append.  Creation failures propagate.
    """
    if session_id:
        return session_id
    created = await store.create_session(user_id=user_id, config=config)
    logger.info("Created conversation session %s (user=%s)", created, user_id or "-")
    return created
