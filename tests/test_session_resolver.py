"""Tests for session resolution."""

from unittest.mock import AsyncMock

import pytest

from services.session_resolver import resolve_session


@pytest.mark.asyncio
async def test_supplied_id_is_reused_without_create():
    store = AsyncMock()
    sid = await resolve_session(store, "sess-existing", user_id="u-1")

    assert sid == "sess-existing"
    store.create_session.assert_not_called()


@pytest.mark.asyncio
async def test_missing_id_creates_session():
    store = AsyncMock()
    store.create_session.return_value = "sess-new"

    sid = await resolve_session(store, None, user_id="u-1", config={"recentMessageCount": 6})

    assert sid == "sess-new"
    store.create_session.assert_awaited_once_with(user_id="u-1", config={"recentMessageCount": 6})


@pytest.mark.asyncio
async def test_empty_string_id_creates_session(context_store):
    sid = await resolve_session(context_store, "")
    assert sid.startswith("sess-")
    assert await context_store.backend.get(sid) is not None


@pytest.mark.asyncio
async def test_create_failure_propagates():
    store = AsyncMock()
    store.create_session.side_effect = ConnectionError("redis down")

    with pytest.raises(ConnectionError):
        await resolve_session(store, None)
