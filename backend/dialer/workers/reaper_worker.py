"""
Reaper Worker
Fails queue items left in_progress after their status callbacks never arrived

Run as separate process:
    python -m dialer.workers.reaper_worker
"""
import asyncio
import logging
import signal
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv

from dialer.core.config import Settings, get_settings
from dialer.domain.interfaces.queue_repository import QueueRepository

logger = logging.getLogger(__name__)


class ReaperWorker:
    """
    Periodic sweep of stale in_progress items.

    An item is stale when it has not been touched (updated_at) for
    `stale_in_progress_seconds`. Stale items become done/failed with
    last_error="stale_in_progress" and each sweep is audited.
    """

    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(self, repository: QueueRepository, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.repository = repository
        self.stale_after = timedelta(seconds=self.settings.stale_in_progress_seconds)
        self.interval = self.settings.reaper_interval_seconds

        self.running = False
        self._stop = asyncio.Event()

        # Stats
        self._sweeps = 0
        self._items_reaped = 0
        self._last_sweep_at: Optional[datetime] = None

    def run_once(self, now: Optional[datetime] = None) -> int:
        """Sweep once. Returns the number of items failed."""
        now = now or datetime.now(timezone.utc)
        reaped = self.repository.sweep_stale_in_progress(now - self.stale_after, actor="reaper")

        self._sweeps += 1
        self._items_reaped += reaped
        self._last_sweep_at = now
        if reaped:
            logger.info(f"Reaped {reaped} stale in-progress items")
        return reaped

    async def run(self) -> None:
        """Main worker loop: sweep, then wait `interval` seconds or until stopped."""
        self.running = True
        consecutive_errors = 0

        logger.info(
            f"Reaper Worker started (stale after {self.stale_after}, every {self.interval}s)"
        )

        while self.running:
            try:
                self.run_once()
                consecutive_errors = 0
            except asyncio.CancelledError:
                logger.info("Worker received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Reaper error ({consecutive_errors}): {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, stopping worker")
                    break

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        self.running = False
        logger.info(f"Reaper Worker stopped: {self.get_stats()}")

    def stop(self) -> None:
        self.running = False
        self._stop.set()

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "running": self.running,
            "sweeps": self._sweeps,
            "items_reaped": self._items_reaped,
            "last_sweep_at": self._last_sweep_at.isoformat() if self._last_sweep_at else None,
        }


async def main():
    """Entry point for running the reaper as separate process."""
    from dialer.infrastructure.storage.queue_repository import SqlQueueRepository

    load_dotenv()
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    worker = ReaperWorker(SqlQueueRepository(), settings)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    asyncio.run(main())
