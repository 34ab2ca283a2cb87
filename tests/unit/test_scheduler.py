"""Tests for TickScheduler."""

from unittest.mock import AsyncMock, patch

import pytest
from apscheduler import CoalescePolicy, ConflictPolicy
from apscheduler.triggers.interval import IntervalTrigger

from polywatch.infrastructure.scheduler import DIGEST_SCHEDULE_ID, SURVEILLANCE_SCHEDULE_ID, TickScheduler


class TestTickScheduler:
    """Tests for TickScheduler."""

    @pytest.fixture
    def scrape_job(self) -> AsyncMock:
        """Return mock scrape job."""
        return AsyncMock()

    @pytest.fixture
    def digest_job(self) -> AsyncMock:
        """Return mock digest job."""
        return AsyncMock()

    @pytest.fixture
    def scheduler(self, scrape_job: AsyncMock, digest_job: AsyncMock) -> TickScheduler:
        """Return TickScheduler over mock jobs."""
        return TickScheduler(scrape_job, digest_job)

    @pytest.fixture
    def mock_async_scheduler(self) -> AsyncMock:
        """Return mock APScheduler AsyncScheduler."""
        mock = AsyncMock()
        mock.__aenter__ = AsyncMock(return_value=mock)
        mock.__aexit__ = AsyncMock()
        mock.start_in_background = AsyncMock()
        mock.add_schedule = AsyncMock()
        return mock

    @pytest.fixture
    async def started(self, scheduler: TickScheduler, mock_async_scheduler: AsyncMock) -> TickScheduler:
        """Return a scheduler started over the mock."""
        with patch(
            "polywatch.infrastructure.scheduler.apscheduler.AsyncScheduler",
            return_value=mock_async_scheduler,
        ):
            await scheduler.start()
        return scheduler

    def test_init(self, scheduler: TickScheduler) -> None:
        """Test scheduler initialization."""
        assert scheduler._scheduler is None
        assert scheduler.interval is None
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_creates_scheduler(self, started: TickScheduler, mock_async_scheduler: AsyncMock) -> None:
        """Test start creates and starts the scheduler."""
        assert started.is_running is True
        mock_async_scheduler.__aenter__.assert_called_once()
        mock_async_scheduler.start_in_background.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, started: TickScheduler, mock_async_scheduler: AsyncMock) -> None:
        """Test that a second start keeps the running scheduler."""
        await started.start()

        mock_async_scheduler.__aenter__.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop(self, started: TickScheduler, mock_async_scheduler: AsyncMock) -> None:
        """Test stop exits the scheduler and forgets the cadence."""
        await started.schedule_ticks(15)

        await started.stop()

        mock_async_scheduler.__aexit__.assert_called_once_with(None, None, None)
        assert started.is_running is False
        assert started.interval is None

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, scheduler: TickScheduler) -> None:
        """Test stop without start does nothing."""
        await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_schedule_requires_start(self, scheduler: TickScheduler) -> None:
        """Test scheduling before start raises."""
        with pytest.raises(RuntimeError, match="not started"):
            await scheduler.schedule_ticks(15)

    @pytest.mark.asyncio
    async def test_schedule_ticks_registers_both_jobs(
        self,
        started: TickScheduler,
        mock_async_scheduler: AsyncMock,
        scrape_job: AsyncMock,
        digest_job: AsyncMock,
    ) -> None:
        """Test both ticks are registered with replace and coalesce policies."""
        await started.schedule_ticks(30)

        calls = mock_async_scheduler.add_schedule.await_args_list
        assert [call.args[0] for call in calls] == [scrape_job, digest_job]
        assert [call.kwargs["id"] for call in calls] == [SURVEILLANCE_SCHEDULE_ID, DIGEST_SCHEDULE_ID]
        for call in calls:
            trigger = call.args[1]
            assert isinstance(trigger, IntervalTrigger)
            assert trigger.minutes == 30
            assert call.kwargs["conflict_policy"] is ConflictPolicy.replace
            assert call.kwargs["coalesce"] is CoalescePolicy.latest
        assert started.interval == 30

    @pytest.mark.asyncio
    async def test_reschedule_only_on_change(self, started: TickScheduler, mock_async_scheduler: AsyncMock) -> None:
        """Test that rescheduling to the same cadence does nothing."""
        await started.schedule_ticks(15)
        mock_async_scheduler.add_schedule.reset_mock()

        await started.reschedule(15)
        mock_async_scheduler.add_schedule.assert_not_awaited()

        await started.reschedule(60)
        assert mock_async_scheduler.add_schedule.await_count == 2
        assert started.interval == 60
