"""
Batch catch-up fetcher.

Pages through the historical range in fixed-size windows. Up to
``concurrency`` windows are fetched at once, but windows are consumed
strictly in ascending height order because each block's reward depends on
the block before it.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, List, Optional, Tuple

import structlog

from aleo_rewards.core.config import Settings
from aleo_rewards.core.exceptions import (
    DataInvariantError,
    StartAboveStableHeightError,
    SyncRangeError,
)
from aleo_rewards.services.endpoint_manager import EndpointManager
from aleo_rewards.services.reward_engine import RewardEngine
from .core.types import Block, PreviousBlockState
from .dispatcher import EventDispatcher


logger = structlog.get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome of a catch-up run."""
    completed_height: int
    error: Optional[BaseException] = None
    previous: Optional[PreviousBlockState] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncFailureState:
    """
    Completed height plus the first unrecoverable error of a run.

    Only the consumer loop writes; in-flight fetch tasks only check
    ``failed`` and drop their work once it is set.
    """

    def __init__(self, completed_height: int):
        self.completed_height = completed_height
        self.error: Optional[BaseException] = None
        self._lock = asyncio.Lock()
        self._failed = asyncio.Event()

    @property
    def failed(self) -> bool:
        return self._failed.is_set()

    async def fail(self, error: BaseException) -> bool:
        """Record ``error`` unless an earlier one is already recorded."""
        async with self._lock:
            if self.error is not None:
                return False
            self.error = error
            self._failed.set()
            return True

    async def advance(self, height: int):
        async with self._lock:
            self.completed_height = height


class BatchFetcher:
    """Catches up from a start height to the stable part of the chain."""

    def __init__(
        self,
        source: EndpointManager,
        engine: RewardEngine,
        dispatcher: EventDispatcher,
        window_size: int = 10,
        concurrency: int = 2,
        safety_margin: int = 10,
        max_rotations: Optional[int] = None,
    ):
        if window_size < 1 or concurrency < 1:
            raise ValueError("window_size and concurrency must be at least 1")
        self.logger = logger.bind(service="batch_fetcher")
        self.source = source
        self.engine = engine
        self.dispatcher = dispatcher
        self.window_size = window_size
        self.concurrency = concurrency
        self.safety_margin = safety_margin
        self.max_rotations = max_rotations

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        source: EndpointManager,
        engine: RewardEngine,
        dispatcher: EventDispatcher,
    ) -> "BatchFetcher":
        return cls(
            source,
            engine,
            dispatcher,
            window_size=config.batch_window_size,
            concurrency=config.batch_concurrency,
            safety_margin=config.batch_safety_margin,
            max_rotations=config.batch_max_rotations or len(config.api_urls),
        )

    async def stable_height(self) -> int:
        """Source tip minus the safety margin, rounded down to a window boundary."""
        tip = await self.source.latest_height(self.max_rotations)
        height = max(tip - self.safety_margin, 0)
        return height - (height % self.window_size)

    def windows(self, start: int, end: int) -> Iterator[Tuple[int, int]]:
        for window_start in range(start, end, self.window_size):
            yield window_start, min(window_start + self.window_size, end)

    async def _fetch_window(self, start: int, end: int, failure: SyncFailureState) -> List[Block]:
        if failure.failed:
            return []
        return await self.source.get_blocks(start, end, self.max_rotations)

    async def run(
        self,
        start: int,
        end: Optional[int] = None,
        previous: Optional[PreviousBlockState] = None,
    ) -> BatchResult:
        """
        Process every block in ``(start, end)``.

        The block at ``start`` is already processed; it is fetched only to
        seed the previous-block state unless ``previous`` is given.

        Returns:
            BatchResult with the highest processed height, the error that
            stopped the run (if any) and the state of the last processed block
        """
        try:
            stable = await self.stable_height()
        except Exception as e:
            self.logger.error("Failed to fetch source height", error=str(e))
            return BatchResult(start, e, previous)

        if start > stable:
            return BatchResult(start, StartAboveStableHeightError(start, stable), previous)

        end = stable if end is None else min(end, stable)
        if end < start:
            return BatchResult(start, SyncRangeError(start, end, "end height is below start height"), previous)
        if end == start:
            self.logger.info("Nothing to catch up", height=start)
            return BatchResult(end, None, previous)

        if previous is not None and previous.height != start:
            error = DataInvariantError(
                f"Carried state is for height {previous.height}, expected {start}",
                {"start": start, "previous_height": previous.height}
            )
            return BatchResult(start, error, None)

        self.logger.info(
            "Starting batch catch-up",
            start=start,
            end=end,
            window_size=self.window_size,
            concurrency=self.concurrency
        )

        failure = SyncFailureState(start)
        state = previous
        timer = time.monotonic()
        windows = self.windows(start, end)
        pending: Deque[Tuple[int, int, asyncio.Task]] = deque()

        def schedule():
            while len(pending) < self.concurrency and not failure.failed:
                window = next(windows, None)
                if window is None:
                    return
                self.logger.debug("Requesting blocks", start=window[0], end=window[1], of=end)
                task = asyncio.create_task(self._fetch_window(window[0], window[1], failure))
                pending.append((window[0], window[1], task))

        schedule()
        while pending and not failure.failed:
            window_start, window_end, task = pending.popleft()
            try:
                blocks = await task
            except Exception as e:
                await failure.fail(e)
                self.logger.error(
                    "Failed to fetch blocks",
                    start=window_start,
                    end=window_end,
                    error=str(e)
                )
                break

            # Keep the next windows in flight while this one is processed
            schedule()

            try:
                state = await self._consume_window(blocks, start, window_start, window_end, state, failure)
            except Exception as e:
                await failure.fail(e)
                self.logger.error(
                    "Failed to process blocks",
                    start=window_start,
                    end=window_end,
                    completed=failure.completed_height,
                    error=str(e)
                )
                break

            self._log_progress(timer, failure.completed_height, start, end)

        # In-flight fetches finish on their own; their results are dropped
        if pending:
            await asyncio.gather(*(task for _, _, task in pending), return_exceptions=True)

        result = BatchResult(failure.completed_height, failure.error, state)
        if result.ok and result.completed_height < end - 1:
            self.logger.warning(
                "Batch catch-up ended short of the requested range",
                height=result.completed_height,
                end=end,
                missing=end - 1 - result.completed_height
            )
        elif result.ok:
            self.logger.info("Batch catch-up completed", height=result.completed_height)
        return result

    async def _consume_window(
        self,
        blocks: List[Block],
        start: int,
        window_start: int,
        window_end: int,
        state: Optional[PreviousBlockState],
        failure: SyncFailureState,
    ) -> Optional[PreviousBlockState]:
        # Sources may return blocks outside the requested window
        blocks = [block for block in blocks if window_start <= block.height < window_end]
        if len(blocks) < window_end - window_start:
            self.logger.warning(
                "Source returned a short window",
                start=window_start,
                end=window_end,
                received=len(blocks)
            )

        for before, after in zip(blocks, blocks[1:]):
            if after.height != before.height + 1:
                raise DataInvariantError(
                    f"Blocks out of order: {after.height} after {before.height}",
                    {"height": after.height, "previous_height": before.height}
                )

        for block in blocks:
            if block.height == start:
                if state is None:
                    state = PreviousBlockState.from_block(block)
                continue
            if state is None:
                raise DataInvariantError(
                    f"No previous block state for block {block.height}",
                    {"height": block.height, "start": start}
                )

            await self.engine.process_and_emit(block, state, self.dispatcher)
            state = PreviousBlockState.from_block(block)
            await failure.advance(block.height)

        return state

    def _log_progress(self, timer: float, current: int, start: int, end: int):
        total = max(end - 1 - start, 1)
        done = max(current - start, 0)
        percentage = min(done * 100 // total, 100)
        elapsed = time.monotonic() - timer
        remaining = total - done
        eta_seconds = int(elapsed / done * remaining) if done else None
        self.logger.info(
            "Synced blocks",
            height=current,
            end=end,
            percentage=percentage,
            eta_minutes=eta_seconds // 60 if eta_seconds is not None else None
        )
