"""Buffered, batched persistence of workflow steps."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .models import StepRecord

logger = logging.getLogger(__name__)

BatchWriter = Callable[[List[StepRecord]], Awaitable[None]]

DEFAULT_BATCH_DELAY = 0.1


class StepBuffer:
    """Accumulate step records in memory and persist them in batches.

    ``enqueue`` never touches the database. The first record added to an
    empty buffer arms a one-shot timer; when it fires, everything pending is
    written with a single call to ``writer``. Records handed to a failed write
    are logged and dropped, so buffered steps are at-most-once.

    All methods must be called from the event loop that owns the buffer.
    """

    def __init__(self, writer: BatchWriter, delay: float = DEFAULT_BATCH_DELAY) -> None:
        self._writer = writer
        self.delay = delay
        self._pending: List[StepRecord] = []
        self._timer: Optional[asyncio.Task] = None
        self._flush_lock = asyncio.Lock()
        self._closed = False
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def flush_scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def enqueue(self, record: StepRecord) -> bool:
        """Append ``record`` and make sure a flush is scheduled."""
        if self._closed:
            logger.warning(
                f"Buffer is shut down, dropping step {record.step} for workflow {record.workflow_id}"
            )
            return False
        self._pending.append(record)
        self.schedule_flush(self.delay)
        return True

    def schedule_flush(self, delay: Optional[float] = None) -> None:
        """Arm the flush timer unless one is already pending."""
        if self.flush_scheduled:
            return
        wait = self.delay if delay is None else delay
        self._timer = asyncio.get_running_loop().create_task(self._fire(wait))

    async def _fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        await self.flush()

    async def flush(self) -> int:
        """Write everything pending and return the number of records persisted."""
        async with self._flush_lock:
            if not self._pending:
                return 0
            batch, self._pending = self._pending, []
            try:
                await self._writer(batch)
            except asyncio.CancelledError:
                self.dropped += len(batch)
                logger.error(f"Batch insert cancelled, {len(batch)} buffered step(s) lost")
                raise
            except Exception:
                self.dropped += len(batch)
                logger.exception(f"Batch insert failed, {len(batch)} buffered step(s) lost")
                return 0
            logger.debug(f"Flushed {len(batch)} buffered step(s)")
            return len(batch)

    async def shutdown(self) -> int:
        """Cancel the timer and perform a final flush. Safe to call twice."""
        self._closed = True
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        return await self.flush()
