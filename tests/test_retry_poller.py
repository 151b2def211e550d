"""Tests for the in-process webhook retry poller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services.retry_poller import process_due_retries_once, start_retry_poller_loop


def _session_factory():
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session), session


class TestProcessDueRetriesOnce:
    @pytest.mark.asyncio
    async def test_returns_number_queued(self):
        factory, _ = _session_factory()

        with patch("app.services.retry_poller.WebhookDispatcher") as dispatcher_cls:
            dispatcher_cls.return_value.process_due_retries = AsyncMock(
                return_value={"claimed": 3, "queued": 2}
            )
            queued = await process_due_retries_once(factory, MagicMock(), MagicMock(), limit=5)

        assert queued == 2
        dispatcher_cls.return_value.process_due_retries.assert_awaited_once_with(limit=5)

    @pytest.mark.asyncio
    async def test_session_is_rolled_back_on_error(self):
        factory, session = _session_factory()

        with patch("app.services.retry_poller.WebhookDispatcher") as dispatcher_cls:
            dispatcher_cls.return_value.process_due_retries = AsyncMock(
                side_effect=RuntimeError("db gone")
            )
            with pytest.raises(RuntimeError):
                await process_due_retries_once(factory, MagicMock(), MagicMock())

        session.rollback.assert_awaited()


class TestRetryPollerLoop:
    @pytest.mark.asyncio
    async def test_poll_errors_do_not_stop_the_loop(self):
        with patch(
            "app.services.retry_poller.process_due_retries_once",
            new=AsyncMock(side_effect=[RuntimeError("boom"), 4]),
        ) as poll, patch("app.services.retry_poller.asyncio") as mock_asyncio:
            mock_asyncio.sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

            with pytest.raises(asyncio.CancelledError):
                await start_retry_poller_loop(
                    MagicMock(), MagicMock(), MagicMock(), interval_seconds=7
                )

        assert poll.await_count == 2
        mock_asyncio.sleep.assert_awaited_with(7)
