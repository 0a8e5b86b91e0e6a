"""Recurring jobs that keep the credential and the local mirror fresh."""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable

from iracing_setup_sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def seconds_until_next_tick(interval: float, now: float | None = None) -> float:
    """Seconds from ``now`` until the next wall-clock multiple of ``interval``.

    Ticks are aligned to the Unix epoch, so a 2 hour job fires on even hours
    regardless of when the process started.

    Args:
        interval: Tick interval in seconds
        now: Current Unix time (defaults to ``time.time()``)

    Returns:
        Delay in seconds, always greater than zero
    """
    if now is None:
        now = time.time()
    next_tick = math.floor(now / interval + 1) * interval
    return next_tick - now


class SyncScheduler:
    """Runs the credential-refresh and sync jobs on fixed wall-clock intervals.

    Each job runs in its own asyncio task. A failing job is logged and the
    timer keeps going; the next tick is the retry.

    Example:
        >>> scheduler = SyncScheduler(engine)
        >>> scheduler.start()
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        engine: SyncEngine,
        credential_refresh_interval: float = 50 * 60,
        sync_interval: float = 2 * 60 * 60,
    ) -> None:
        """Initialize the scheduler.

        Args:
            engine: Engine the jobs call into
            credential_refresh_interval: Seconds between token refreshes
            sync_interval: Seconds between catalog refresh + download runs
        """
        self._engine = engine
        self._credential_refresh_interval = credential_refresh_interval
        self._sync_interval = sync_interval
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        """Whether the job tasks are running."""
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start both recurring jobs on the running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self._tasks = [
            asyncio.create_task(
                self._run_every(
                    "credential refresh",
                    self._credential_refresh_interval,
                    self.refresh_credential_job,
                )
            ),
            asyncio.create_task(
                self._run_every("sync", self._sync_interval, self.sync_job)
            ),
        ]
        logger.info(
            f"Scheduler started: credential refresh every "
            f"{self._credential_refresh_interval}s, sync every {self._sync_interval}s"
        )

    async def stop(self) -> None:
        """Cancel both jobs and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    async def refresh_credential_job(self) -> None:
        """Scheduled credential refresh. Never raises."""
        logger.info("Running scheduled credential refresh...")
        try:
            await self._engine.refresh_credential()
        except Exception as e:
            logger.error(f"Failed to refresh credential: {e}")

    async def sync_job(self) -> None:
        """Scheduled catalog refresh followed by reconciliation. Never raises.

        A catalog failure is logged and reconciliation still runs against the
        previously loaded catalog.
        """
        logger.info("Running scheduled download...")
        try:
            await self._engine.refresh_catalog()
        except Exception as e:
            logger.error(f"Failed to fetch catalog: {e}")

        try:
            count = await self._engine.reconcile_files()
        except Exception as e:
            logger.error(f"Scheduled download failed: {e}")
        else:
            logger.info(f"Scheduled download completed: {count} files")

    async def _run_every(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[None]],
    ) -> None:
        while True:
            delay = seconds_until_next_tick(interval)
            logger.debug(f"Next {name} in {delay:.0f}s")
            await asyncio.sleep(delay)
            try:
                await job()
            except Exception:
                logger.exception(f"Unhandled error in scheduled {name}")
