"""
Main entry point for the indexer service.

Wires the height cursor, reward store, event dispatcher and block source
together, catches up in batches from the cursor height and then follows
the chain tip.
"""

import asyncio
import signal
from typing import Optional

import structlog

from aleo_rewards.core.config import Settings, load_settings
from aleo_rewards.core.database import Database, DatabaseManager
from aleo_rewards.core.exceptions import IndexerError, StartAboveStableHeightError
from aleo_rewards.core.logging import setup_logging
from aleo_rewards.services.endpoint_manager import EndpointManager
from aleo_rewards.services.reward_engine import RewardEngine
from aleo_rewards.storage.base import RewardStore
from aleo_rewards.storage.sql_store import SqlRewardStore
from .batch_fetcher import BatchFetcher, BatchResult
from .dispatcher import EventDispatcher
from .height_cursor import HeightCursor
from .live_fetcher import LiveTailFetcher


logger = structlog.get_logger(__name__)


class IndexerMain:
    """
    Indexer service coordinator.

    Pipeline:
    - Batch catch-up from the cursor height to the stable source height
    - Live tail from there on, one confirmed block at a time
    - Reward events and height advances go through the event dispatcher
    """

    def __init__(
        self,
        config: Settings,
        store: Optional[RewardStore] = None,
        source: Optional[EndpointManager] = None,
    ):
        self.config = config
        self.store = store
        self.source = source
        self.cursor = HeightCursor(config.height_file)
        self.engine = RewardEngine.from_settings(config)
        self.dispatcher: Optional[EventDispatcher] = None
        self.live_fetcher: Optional[LiveTailFetcher] = None
        self.running = False

    async def initialize(self):
        """Open the store and the block source."""
        try:
            logger.info("🚀 Initializing indexer service", endpoints=self.config.api_urls)

            if self.store is None:
                database = Database(config=self.config)
                await DatabaseManager.create_tables(database)
                self.store = SqlRewardStore(database)

            if self.source is None:
                self.source = EndpointManager.from_settings(self.config)

            self.dispatcher = EventDispatcher(
                self.store,
                self.cursor,
                queue_size=self.config.dispatcher_queue_size
            )

            logger.info("✅ Indexer service initialized")

        except Exception as e:
            logger.error("❌ Failed to initialize indexer", error=str(e))
            raise

    async def resolve_start_height(self) -> int:
        """Cursor height, else the store's latest height, else 0."""
        height = self.cursor.read()
        if height is not None:
            logger.info("Resuming from height file", height=height, path=str(self.cursor.path))
            return height

        height = await self.store.latest_height()
        if height is not None:
            logger.info("Height file missing, resuming from store", height=height)
        else:
            height = 0
            logger.info("Height file missing, starting from genesis")
        self.cursor.write(height)
        return height

    async def run(self, end_height: Optional[int] = None):
        """
        Catch up, then follow the tip until stopped.

        Raises:
            IndexerError: If batch catch-up fails
        """
        self.running = True
        self.dispatcher.start()

        start = await self.resolve_start_height()

        batch = BatchFetcher.from_settings(self.config, self.source, self.engine, self.dispatcher)
        result = await batch.run(start, end_height)
        if isinstance(result.error, StartAboveStableHeightError):
            # Restarted close to the tip: nothing to catch up, the live tail resumes at start
            logger.info(
                "Start height is above the stable height, skipping batch catch-up",
                height=start,
                stable_height=result.error.stable
            )
            result = BatchResult(start, None, result.previous)
        if not result.ok:
            logger.error(
                "Batch catch-up failed",
                completed_height=result.completed_height,
                error=str(result.error)
            )
            raise IndexerError(
                f"Batch catch-up stopped at {result.completed_height}: {result.error}",
                {"completed_height": result.completed_height}
            )

        if not self.running:
            return

        self.live_fetcher = LiveTailFetcher.from_settings(
            self.config,
            self.source,
            self.engine,
            self.dispatcher,
            last_processed=result.completed_height,
            previous=result.previous,
        )
        await self.live_fetcher.run()

    async def stop(self):
        """Stop fetching, flush pending events and close resources."""
        logger.info("⏹️ Stopping indexer service")
        self.running = False

        if self.live_fetcher:
            self.live_fetcher.stop()
        if self.dispatcher:
            await self.dispatcher.stop()
        if self.source:
            await self.source.close()
        if self.store:
            await self.store.close()

        logger.info("✅ Indexer service stopped")


async def main(config_path: Optional[str] = None):
    """Run the indexer service until interrupted."""
    config = load_settings(config_path)
    setup_logging(config=config)
    logger.info("Syncing rewards", tracked_addresses=config.tracked_addresses)

    indexer = IndexerMain(config)
    runner: Optional[asyncio.Task] = None

    def handle_signal():
        logger.info("Received shutdown signal")
        indexer.running = False
        if indexer.live_fetcher:
            indexer.live_fetcher.stop()
        elif runner:
            runner.cancel()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, handle_signal)

    try:
        await indexer.initialize()
        runner = asyncio.create_task(indexer.run())
        await runner
    except asyncio.CancelledError:
        logger.info("Indexer run cancelled")
    except Exception as e:
        logger.error("Indexer service failed", error=str(e))
        raise
    finally:
        await indexer.stop()


if __name__ == "__main__":
    asyncio.run(main())
