"""
Live tail fetcher - follows the chain tip one block at a time.

A block is only fetched once it is more than ``confirmation_depth`` blocks
below the tip, which keeps the tailer off short-lived forks. Source
failures are logged and retried without advancing; only data invariant
violations and a dead dispatcher end the loop.
"""

import asyncio
from typing import Optional

import structlog

from aleo_rewards.core.config import Settings
from aleo_rewards.core.exceptions import (
    BlockSourceError,
    DataInvariantError,
    DispatcherStoppedError,
)
from aleo_rewards.services.endpoint_manager import EndpointManager
from aleo_rewards.services.reward_engine import RewardEngine
from .core.types import PreviousBlockState
from .dispatcher import EventDispatcher


logger = structlog.get_logger(__name__)


class LiveTailFetcher:
    """Polls the tip and processes each newly confirmed block."""

    def __init__(
        self,
        source: EndpointManager,
        engine: RewardEngine,
        dispatcher: EventDispatcher,
        last_processed: int,
        previous: Optional[PreviousBlockState] = None,
        confirmation_depth: int = 10,
        block_interval: float = 15.0,
    ):
        self.logger = logger.bind(service="live_tail_fetcher")
        self.source = source
        self.engine = engine
        self.dispatcher = dispatcher
        self.last_processed = last_processed
        self.previous = previous if previous is not None and previous.height == last_processed else None
        self.confirmation_depth = confirmation_depth
        self.block_interval = block_interval
        self.blocks_processed = 0
        self.errors_encountered = 0
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        source: EndpointManager,
        engine: RewardEngine,
        dispatcher: EventDispatcher,
        last_processed: int,
        previous: Optional[PreviousBlockState] = None,
    ) -> "LiveTailFetcher":
        return cls(
            source,
            engine,
            dispatcher,
            last_processed,
            previous=previous,
            confirmation_depth=config.confirmation_depth,
            block_interval=config.block_interval,
        )

    @property
    def is_running(self) -> bool:
        return not self._stop_event.is_set()

    def stop(self):
        """Ask the loop to end at its next suspension point."""
        self._stop_event.set()

    async def _pause(self, seconds: float):
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def step(self) -> bool:
        """
        One poll iteration.

        Returns:
            True if a block was processed, False if the loop waited
        """
        tip = await self.source.latest_height()

        if tip < self.last_processed:
            self.logger.debug(
                "Source is behind the processed height",
                endpoint=self.source.current_endpoint,
                tip=tip,
                last_processed=self.last_processed
            )
            await self._pause(self.block_interval)
            return False

        if tip - self.last_processed <= self.confirmation_depth:
            self.logger.debug(
                "Waiting for confirmations",
                tip=tip,
                last_processed=self.last_processed,
                confirmation_depth=self.confirmation_depth
            )
            await self._pause(self.block_interval)
            return False

        if self.previous is None:
            seed = await self.source.get_block(self.last_processed)
            if seed.height != self.last_processed:
                raise DataInvariantError(
                    f"Requested block {self.last_processed}, received {seed.height}",
                    {"requested": self.last_processed, "received": seed.height}
                )
            self.previous = PreviousBlockState.from_block(seed)
            self.logger.debug("Seeded previous block state", height=seed.height)

        current = await self.source.get_block(self.last_processed + 1)
        result = await self.engine.process_and_emit(current, self.previous, self.dispatcher)

        self.last_processed = current.height
        self.previous = PreviousBlockState.from_block(current)
        self.blocks_processed += 1

        self.logger.info(
            "Processed block",
            height=current.height,
            total_reward=result.total_reward,
            solutions=len(result.solution_rewards),
            tip=tip
        )
        return True

    async def run(self):
        """
        Follow the tip until ``stop`` is called.

        Raises:
            DataInvariantError: The source served inconsistent blocks
            DispatcherStoppedError: The reward store can no longer accept events
        """
        self.logger.info("Live tail started", last_processed=self.last_processed)

        while self.is_running:
            try:
                await self.step()
            except (DataInvariantError, DispatcherStoppedError) as e:
                self.logger.error(
                    "Live tail stopped on fatal error",
                    height=self.last_processed + 1,
                    error=str(e)
                )
                raise
            except BlockSourceError as e:
                self.errors_encountered += 1
                self.logger.warning(
                    "Failed to fetch block, retrying",
                    height=self.last_processed + 1,
                    error=str(e)
                )
                await self._pause(self.block_interval)
            except Exception as e:
                self.errors_encountered += 1
                self.logger.error(
                    "Unexpected live tail error, retrying",
                    height=self.last_processed + 1,
                    error=str(e),
                    exc_info=True
                )
                await self._pause(self.block_interval)

        self.logger.info("Live tail stopped", last_processed=self.last_processed)
