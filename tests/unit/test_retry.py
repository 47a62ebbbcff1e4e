"""Tests for the async retry combinator."""
from unittest.mock import AsyncMock, patch

import pytest

from clinisync.sync.retry import call_with_retry, retry_async


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        fn = AsyncMock(return_value="ok")
        assert await call_with_retry(fn, 1, key="v", max_attempts=3, base_delay=0) == "ok"
        fn.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        fn = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])
        with patch("clinisync.sync.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await call_with_retry(fn, max_attempts=3, base_delay=1.0)
        assert result == "ok"
        assert fn.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_reraises_after_max_attempts(self):
        fn = AsyncMock(side_effect=ConnectionError("down"))
        with patch("clinisync.sync.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ConnectionError):
                await call_with_retry(fn, max_attempts=2)
        assert fn.await_count == 2

    @pytest.mark.asyncio
    async def test_delay_capped_at_max_delay(self):
        fn = AsyncMock(side_effect=[OSError(), OSError(), OSError(), "ok"])
        with patch("clinisync.sync.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await call_with_retry(fn, max_attempts=4, base_delay=10.0, max_delay=15.0)
        assert [c.args[0] for c in sleep.await_args_list] == [10.0, 15.0, 15.0]

    @pytest.mark.asyncio
    async def test_other_exceptions_not_retried(self):
        fn = AsyncMock(side_effect=ValueError("bad input"))
        with pytest.raises(ValueError):
            await call_with_retry(fn, max_attempts=5, exceptions=(ConnectionError,))
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_retry_subclass_propagates_at_once(self):
        class ExportMissing(ConnectionError):
            pass

        fn = AsyncMock(side_effect=ExportMissing("no such directory"))
        with patch("clinisync.sync.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ExportMissing):
                await call_with_retry(fn, max_attempts=3, no_retry=(ExportMissing,))
        fn.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await call_with_retry(AsyncMock(), max_attempts=0)


class TestRetryDecorator:
    @pytest.mark.asyncio
    async def test_decorated_function_retries(self):
        calls = []

        @retry_async(max_attempts=3, base_delay=0)
        async def flaky(x):
            calls.append(x)
            if len(calls) < 2:
                raise TimeoutError("slow")
            return x * 2

        assert await flaky(21) == 42
        assert calls == [21, 21]
        assert flaky.__name__ == "flaky"
