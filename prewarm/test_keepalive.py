import asyncio
import gc
import logging
from unittest.mock import Mock

import pytest

from prewarm.keepalive import BackgroundTaskRegistry


@pytest.fixture
def logger():
    return Mock(spec=logging.Logger)


class TestBackgroundTaskRegistry:
    @pytest.mark.asyncio
    async def test_task_runs_after_caller_returns(self, logger):
        registry = BackgroundTaskRegistry(logger)
        done = asyncio.Event()

        async def work():
            await asyncio.sleep(0.01)
            done.set()
            return "warmed"

        def handler():
            registry.wait_until(work(), name="prewarm test")

        handler()
        gc.collect()
        assert registry.pending == 1

        await asyncio.wait_for(done.wait(), 1)
        await asyncio.sleep(0)
        assert registry.pending == 0

    @pytest.mark.asyncio
    async def test_task_name_and_result(self, logger):
        registry = BackgroundTaskRegistry(logger)

        async def work():
            return 3

        task = registry.wait_until(work(), name="prewarm https://example.com/")

        assert task.get_name() == "prewarm https://example.com/"
        assert await task == 3

    @pytest.mark.asyncio
    async def test_failure_logged_not_raised(self, logger):
        registry = BackgroundTaskRegistry(logger)

        async def broken():
            raise ValueError("crawl exploded")

        task = registry.wait_until(broken(), name="broken")
        await asyncio.wait([task])
        await asyncio.sleep(0)

        assert registry.pending == 0
        logger.log.assert_called_once()
        assert "[KeepAlive] Task broken failed:" in logger.log.call_args.args[1]
        assert "crawl exploded" in logger.log.call_args.args[1]

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending_work(self, logger):
        registry = BackgroundTaskRegistry(logger)
        finished = []

        async def work(i):
            await asyncio.sleep(0.01 * i)
            finished.append(i)

        for i in range(3):
            registry.wait_until(work(i))

        await registry.drain(timeout=1)

        assert sorted(finished) == [0, 1, 2]
        assert registry.pending == 0
        logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_drain_cancels_work_past_timeout(self, logger):
        registry = BackgroundTaskRegistry(logger)
        never = asyncio.Event()

        task = registry.wait_until(never.wait(), name="stuck")
        await registry.drain(timeout=0.01)

        assert task.cancelled()
        assert registry.pending == 0
        logger.warning.assert_called_once()
        logger.log.assert_not_called()

    @pytest.mark.asyncio
    async def test_drain_without_tasks(self, logger):
        await BackgroundTaskRegistry(logger).drain(timeout=1)

        logger.info.assert_not_called()
