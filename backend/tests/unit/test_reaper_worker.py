"""
Unit Tests for the Reaper Worker
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from dialer.infrastructure.storage.models import QueueAuditRow
from dialer.workers import ReaperWorker

TENANT = "tenant-a"
CAMPAIGN = "campaign-1"


@pytest.fixture
def worker(repository, settings):
    settings.stale_in_progress_seconds = 60
    settings.reaper_interval_seconds = 1
    return ReaperWorker(repository, settings)


class TestRunOnce:

    def test_fails_items_older_than_threshold(self, worker, repository, seeded):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1", "lead-2"])
        stale = repository.claim_next(TENANT, CAMPAIGN)

        reaped = worker.run_once(now=datetime.now(timezone.utc) + timedelta(minutes=5))

        assert reaped == 1
        item = repository.apply_call_status(stale.id, None, None)
        assert item.state.value == "done"
        assert item.outcome.value == "failed"
        assert item.last_error == "stale_in_progress"

        with seeded() as session:
            audit = session.scalars(select(QueueAuditRow)).one()
        assert audit.action == "sweep_stale_in_progress"
        assert audit.actor == "reaper"
        assert audit.meta["queue_ids"] == [stale.id]

    def test_recent_items_untouched(self, worker, repository):
        repository.enqueue(TENANT, CAMPAIGN, ["lead-1"])
        repository.claim_next(TENANT, CAMPAIGN)

        assert worker.run_once() == 0
        assert repository.queue_stats(TENANT, CAMPAIGN)["states"]["in_progress"] == 1

    def test_stats(self, worker):
        worker.run_once()

        stats = worker.get_stats()
        assert stats["sweeps"] == 1
        assert stats["items_reaped"] == 0
        assert stats["last_sweep_at"] is not None
        assert stats["running"] is False


class TestRunLoop:

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self, worker):
        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)

        worker.stop()
        await asyncio.wait_for(task, timeout=2)

        assert worker.get_stats()["sweeps"] >= 1
        assert worker.running is False

    @pytest.mark.asyncio
    async def test_gives_up_after_consecutive_errors(self, settings):
        repository = MagicMock()
        repository.sweep_stale_in_progress.side_effect = RuntimeError("db down")
        settings.reaper_interval_seconds = 0
        worker = ReaperWorker(repository, settings)

        await asyncio.wait_for(worker.run(), timeout=2)

        assert repository.sweep_stale_in_progress.call_count == ReaperWorker.MAX_CONSECUTIVE_ERRORS
