"""Periodic reconciliation runner."""

import asyncio
import uuid
from typing import Optional

import structlog

from quotapool.api.registry import build_scheme
from quotapool.config import Settings, get_settings
from quotapool.controllers.manager import ControllerManager, SweepReport
from quotapool.storage.backends.sqlite import SQLiteStore
from quotapool.storage.interface import VersionedStore


logger = structlog.get_logger(__name__)


class ReconcileRunner:
    """Sweeps every pool and claim at a fixed interval until stopped."""

    def __init__(
        self,
        store: Optional[VersionedStore] = None,
        worker_id: Optional[str] = None,
        interval: Optional[float] = None,
        concurrency: Optional[int] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.store = store or SQLiteStore(self.settings.database_url, build_scheme())
        self.worker_id = worker_id or str(uuid.uuid4())
        self.interval = interval or self.settings.reconcile_interval
        self.concurrency = concurrency or self.settings.worker_concurrency

        self.manager = ControllerManager(
            self.store,
            retry_policy=self.settings.retry_policy(),
            concurrency=self.concurrency,
        )
        self.sweeps = 0
        self.last_report: Optional[SweepReport] = None

        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    async def run(self) -> None:
        """Run sweeps until :meth:`stop` is called."""
        self._running = True
        self._stop_event = asyncio.Event()

        await self.store.initialize()
        try:
            while self._running:
                await self.run_once()

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.store.close()
            logger.info("runner_stopped", worker_id=self.worker_id, sweeps=self.sweeps)

    async def run_once(self) -> SweepReport:
        """Run a single sweep, logging rather than raising on failure."""
        try:
            report = await self.manager.sweep()
        except Exception as e:
            # A broken sweep must not take the runner down; the next one retries
            logger.error(
                "sweep_failed",
                worker_id=self.worker_id,
                error=str(e),
                error_type=type(e).__name__
            )
            report = SweepReport(errors=[str(e)])

        self.sweeps += 1
        self.last_report = report
        return report

    async def stop(self) -> None:
        """Stop after the current sweep."""
        logger.info("runner_stopping", worker_id=self.worker_id)
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
