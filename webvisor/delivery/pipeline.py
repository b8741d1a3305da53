"""
Outbound batching for one recording session.

Events queue in production order. A flush takes up to ``batch_size`` from
the head and posts them; on failure they go back to the head, ahead of
anything queued meanwhile, and wait for the next flush. Flushes never
overlap, so a re-queued batch can't be overtaken.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from ..events import BaseEvent
from .transport import Transport

logger = logging.getLogger(__name__)


class BatchPipeline:
    def __init__(
        self,
        session_id: str,
        transport: Transport,
        batch_size: int = 50,
        meta: Optional[Callable[[], Dict[str, Any]]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.session_id = session_id
        self.transport = transport
        self.batch_size = batch_size
        self._meta = meta or dict
        self._clock = clock
        self._queue: List[BaseEvent] = []
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._full_flush: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failures = 0

    @property
    def pending(self) -> List[BaseEvent]:
        return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, event: BaseEvent) -> None:
        self._queue.append(event)
        if len(self._queue) >= self.batch_size and (self._full_flush is None or self._full_flush.done()):
            self._full_flush = self._spawn(self._flush_full_batches)

    def schedule_flush(self) -> Optional[asyncio.Task]:
        """Start a flush on the running loop without waiting for it."""
        return self._spawn(self.flush)

    def _spawn(self, fn) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop; %d events stay queued", len(self._queue))
            return None
        task = loop.create_task(fn())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _payload(self, batch: List[BaseEvent]) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "events": [e.to_wire() for e in batch],
            "timestamp": self._clock() if self._clock else batch[-1].timestamp,
            "meta": self._meta(),
        }

    async def flush(self) -> bool:
        async with self._lock:
            if not self._queue:
                return True
            batch = self._queue[:self.batch_size]
            del self._queue[:self.batch_size]
            try:
                await self.transport.send(self._payload(batch))
            except Exception as e:
                self._queue[0:0] = batch
                self.failures += 1
                logger.warning("batch of %d events for %s not delivered: %s",
                               len(batch), self.session_id, e)
                return False
            self.delivered += len(batch)
            return True

    async def _flush_full_batches(self) -> None:
        while len(self._queue) >= self.batch_size:
            if not await self.flush():
                return

    async def drain(self) -> bool:
        """Flush until the queue is empty or a delivery fails."""
        while self._queue:
            if not await self.flush():
                return False
        return True

    async def wait_idle(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
