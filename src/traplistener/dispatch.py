"""Delivery of received traps to handlers"""

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from traplistener.handlers import TrapHandler
from traplistener.packet import TrapPacket, TrapSource

_logger = logging.getLogger(__name__)


async def invoke_handler(
    handler: TrapHandler, packet: TrapPacket, source: TrapSource, logger: Optional[logging.Logger] = None
):
    """Calls a trap handler, awaiting its result if it returned an awaitable.

    Exceptions raised by the handler are logged and not propagated, so that a single bad trap cannot stop the
    receive loop.
    """
    logger = logger or _logger
    try:
        result = handler(packet, source)
        if inspect.isawaitable(result):
            await result
    except Exception:  # noqa
        logger.exception("Unhandled exception in trap handler %r", handler)


class TrapDispatchQueue:
    """Decouples trap handling from the receive loop using a bounded queue and a pool of workers.

    Traps that arrive while the queue is full are dropped rather than stalling the receive loop.  Handlers that
    are coroutine functions run as worker tasks on the event loop, while plain functions run in a thread pool of
    the same size as the worker pool.
    """

    def __init__(
        self,
        handler: TrapHandler,
        queue_size: int = 1000,
        workers: int = 1,
        logger: Optional[logging.Logger] = None,
    ):
        self.handler = handler
        self.queue_size = queue_size
        self.workers = workers
        self.logger = logger or _logger
        self.dropped = 0
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def start(self):
        """Starts the worker tasks.  Must be called from within a running event loop."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        if not inspect.iscoroutinefunction(self.handler):
            self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="trap-handler")
        self._tasks = [
            asyncio.create_task(self._work(), name=f"trap-dispatch-worker-{number}") for number in range(self.workers)
        ]

    async def stop(self):
        """Stops all workers.  Traps still waiting in the queue are discarded."""
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def offer(self, packet: TrapPacket, source: TrapSource) -> bool:
        """Queues a trap for handling.  Returns False if the trap was dropped because the queue was full."""
        try:
            self._queue.put_nowait((packet, source))
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning("Trap queue is full, dropping trap from %s (%d dropped so far)", source, self.dropped)
            return False
        return True

    async def join(self):
        """Waits until every queued trap has been handled"""
        await self._queue.join()

    async def _work(self):
        loop = asyncio.get_running_loop()
        while True:
            packet, source = await self._queue.get()
            try:
                if self._executor:
                    await loop.run_in_executor(self._executor, self._call_in_thread, packet, source)
                else:
                    await invoke_handler(self.handler, packet, source, self.logger)
            finally:
                self._queue.task_done()

    def _call_in_thread(self, packet: TrapPacket, source: TrapSource):
        try:
            self.handler(packet, source)
        except Exception:  # noqa
            self.logger.exception("Unhandled exception in trap handler %r", self.handler)
