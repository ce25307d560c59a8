"""
Event dispatcher - ordered handoff from the reward engine to the reward store.

A single consumer task applies messages in the order they were emitted.
Height events advance the cursor; reward events go to the store. A store
failure ends the consumer: after that the store's state is unknown and
blind retries could write duplicates.
"""

import asyncio
from typing import Optional

import structlog

from aleo_rewards.core.exceptions import DispatcherStoppedError
from aleo_rewards.storage.base import RewardStore
from .core.messages import BlockRewardEvent, HeightAdvancedEvent, Message, SolutionRewardEvent
from .height_cursor import HeightCursor


logger = structlog.get_logger(__name__)


class EventDispatcher:
    """Single-consumer ordered channel in front of a RewardStore."""

    def __init__(self, store: RewardStore, cursor: HeightCursor, queue_size: int = 4096):
        self.logger = logger.bind(service="event_dispatcher")
        self.store = store
        self.cursor = cursor
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self.error: Optional[BaseException] = None
        self.last_height: Optional[int] = None
        self.messages_handled = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self):
        """Start the consumer task."""
        if self._task is not None:
            self.logger.warning("Dispatcher already started")
            return
        self._task = asyncio.create_task(self._consume(), name="event-dispatcher")
        self.logger.info("Event dispatcher started", queue_size=self._queue.maxsize)

    async def emit(self, message: Message):
        """
        Queue ``message`` for the consumer.

        Raises:
            DispatcherStoppedError: If the consumer is not running
        """
        if not self.is_running:
            raise DispatcherStoppedError(str(self.error) if self.error else None)
        await self._queue.put(message)

    async def _apply(self, message: Message):
        if isinstance(message, SolutionRewardEvent):
            await self.store.record_solution(message)
        elif isinstance(message, BlockRewardEvent):
            await self.store.record_block(message)
        elif isinstance(message, HeightAdvancedEvent):
            await asyncio.to_thread(self.cursor.write, message.height)
            self.last_height = message.height
        else:
            raise TypeError(f"Unknown message type: {type(message).__name__}")

    async def _consume(self):
        self.logger.debug("Listening for messages")
        while True:
            message = await self._queue.get()
            try:
                await self._apply(message)
                self.messages_handled += 1
            except Exception as e:
                self.error = e
                self._stopped = True
                self.logger.error(
                    "Failed to apply message, stopping dispatcher",
                    message=message.name,
                    height=getattr(message, "block_height", None) or getattr(message, "height", None),
                    error=str(e)
                )
                return
            finally:
                self._queue.task_done()

    async def drain(self):
        """Wait until every queued message is applied or the consumer ends."""
        if self._task is None:
            return
        join = asyncio.create_task(self._queue.join())
        try:
            await asyncio.wait({join, self._task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            join.cancel()

    async def stop(self):
        """Drain pending messages, then stop the consumer."""
        if self._task is None:
            return
        await self.drain()
        self._stopped = True
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self.logger.info(
            "Event dispatcher stopped",
            messages_handled=self.messages_handled,
            last_height=self.last_height
        )
