"""
Fire-and-forget scheduling of sync passes.

HTTP handlers call enqueue() and respond immediately; a single worker task
drains the queue and awaits each pass. A mailbox that already has a pass
pending or running is not enqueued again.
"""

import asyncio
from typing import Optional, Set

from app.logging_config import get_logger
from app.services.sync_orchestrator import SyncOrchestrator

logger = get_logger(__name__)


class SyncScheduler:
    """asyncio queue + worker loop in front of a SyncOrchestrator."""

    def __init__(self, orchestrator: SyncOrchestrator):
        self._orchestrator = orchestrator
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._pending: Set[str] = set()
        self._worker: Optional[asyncio.Task] = None

    def is_busy(self, email: str) -> bool:
        return email in self._pending or self._orchestrator.guard.is_busy(email)

    def enqueue(self, email: str) -> bool:
        """
        Schedule a sync pass for a mailbox.

        Returns:
            False if a pass for this mailbox is already pending or running
        """
        if self.is_busy(email):
            logger.info(f"⏳ Pass already scheduled or running for {email}, trigger dropped")
            return False

        self._pending.add(email)
        self._queue.put_nowait(email)
        logger.info(f"📥 Sync pass queued for {email}")
        return True

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._worker_loop(), name="gmail-sync-worker")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def join(self) -> None:
        """Wait until every queued pass has finished."""
        await self._queue.join()

    async def _worker_loop(self) -> None:
        while True:
            email = await self._queue.get()
            self._pending.discard(email)
            try:
                report = await self._orchestrator.run(email)
                logger.debug(f"Pass for {email} ended: {report.outcome.value}")
            except Exception:
                logger.exception(f"❌ Sync worker error for {email}")
            finally:
                self._queue.task_done()
