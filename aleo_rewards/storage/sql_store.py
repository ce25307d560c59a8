"""
SQLAlchemy-backed reward store.
"""

from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from aleo_rewards.core.database import Database
from aleo_rewards.core.exceptions import SinkError
from aleo_rewards.indexer.core.messages import BlockRewardEvent, SolutionRewardEvent
from aleo_rewards.models.reward import BlockRecord, SolutionRecord
from .base import Reward, RewardStore


logger = structlog.get_logger(__name__)


class SqlRewardStore(RewardStore):
    """Writes reward events to the ``blocks`` and ``block_solutions`` tables."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logger.bind(service="sql_reward_store")

    async def record_block(self, event: BlockRewardEvent) -> None:
        block = event.block
        record = BlockRecord(
            block_height=block.height,
            block_hash=block.block_hash,
            previous_block_hash=block.previous_hash,
            network=block.network,
            coinbase_target=block.coinbase_target,
            proof_target=block.proof_target,
            last_coinbase_target=block.last_coinbase_target,
            last_coinbase_timestamp=block.last_coinbase_timestamp,
            timestamp=block.timestamp,
            solutions_num=event.solutions_num,
            block_reward=event.block_reward,
        )
        try:
            async with self.database.session() as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise SinkError(
                f"Failed to record block {block.height}",
                {"height": block.height, "error": str(e)}
            )

    async def record_solution(self, event: SolutionRewardEvent) -> None:
        await self.record_solutions([event])

    async def record_solutions(self, events) -> None:
        records = [
            SolutionRecord(
                block_height=event.block_height,
                address=event.address,
                nonce=event.nonce,
                commitment=event.commitment,
                solution_reward=event.reward,
                timestamp=event.timestamp,
            )
            for event in events
        ]
        if not records:
            return
        try:
            async with self.database.session() as session:
                session.add_all(records)
        except SQLAlchemyError as e:
            raise SinkError(
                f"Failed to record solutions of block {records[0].block_height}",
                {"height": records[0].block_height, "count": len(records), "error": str(e)}
            )

    async def latest_height(self) -> Optional[int]:
        try:
            async with self.database.session() as session:
                block_height = await session.scalar(select(func.max(BlockRecord.block_height)))
                solution_height = await session.scalar(select(func.max(SolutionRecord.block_height)))
        except SQLAlchemyError as e:
            raise SinkError("Failed to read latest height", {"error": str(e)})

        heights = [int(h) for h in (block_height, solution_height) if h is not None]
        return max(heights) if heights else None

    async def solutions_by_address_and_time_range(
        self, address: str, begin: int, end: int
    ) -> List[Reward]:
        query = (
            select(SolutionRecord)
            .where(
                SolutionRecord.address == address,
                SolutionRecord.timestamp >= begin,
                SolutionRecord.timestamp <= end,
            )
            .order_by(SolutionRecord.block_height, SolutionRecord.id)
        )
        try:
            async with self.database.session() as session:
                rows = (await session.scalars(query)).all()
        except SQLAlchemyError as e:
            raise SinkError(
                f"Failed to query rewards of {address}",
                {"address": address, "error": str(e)}
            )

        return [
            Reward(
                address=row.address,
                height=row.block_height,
                nonce=int(row.nonce),
                reward=int(row.solution_reward),
                timestamp=row.timestamp,
            )
            for row in rows
        ]

    async def close(self) -> None:
        await self.database.close()
