"""Tests for session scope handling."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from archivist.database import get_db, session_scope


def session_maker_for(mock_db: AsyncMock) -> MagicMock:
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=mock_db)
    session.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session)


class TestSessionScope:
    @pytest.mark.asyncio
    async def test_commits_on_success(self):
        mock_db = AsyncMock()
        maker = session_maker_for(mock_db)

        with patch("archivist.database.async_session_maker", maker):
            async with session_scope() as db:
                assert db is mock_db

        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_and_reraises(self):
        mock_db = AsyncMock()
        maker = session_maker_for(mock_db)

        with (
            patch("archivist.database.async_session_maker", maker),
            pytest.raises(RuntimeError, match="boom"),
        ):
            async with session_scope():
                raise RuntimeError("boom")

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()


class TestGetDb:
    @pytest.mark.asyncio
    async def test_request_session_is_committed(self):
        mock_db = AsyncMock()
        maker = session_maker_for(mock_db)

        with patch("archivist.database.async_session_maker", maker):
            dependency = get_db()
            assert await anext(dependency) is mock_db
            with pytest.raises(StopAsyncIteration):
                await anext(dependency)

        mock_db.commit.assert_awaited_once()
