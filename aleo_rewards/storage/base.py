"""
Reward store interface.

Anything that can record block and solution rewards can sit behind the
event dispatcher. ``latest_height`` is optional and only used to resume
when the height cursor file is missing.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from pydantic import BaseModel

from aleo_rewards.indexer.core.messages import BlockRewardEvent, SolutionRewardEvent


class Reward(BaseModel):
    """A recorded solution reward as served by the read API."""
    address: str
    height: int
    nonce: int
    reward: int
    timestamp: int


class RewardStore(ABC):
    """Persistence sink for reward events."""

    @abstractmethod
    async def record_block(self, event: BlockRewardEvent) -> None:
        """Persist block-level reward detail."""

    @abstractmethod
    async def record_solution(self, event: SolutionRewardEvent) -> None:
        """Persist one solution reward."""

    async def record_solutions(self, events: Iterable[SolutionRewardEvent]) -> None:
        for event in events:
            await self.record_solution(event)

    async def latest_height(self) -> Optional[int]:
        """Highest recorded block height, if the store can tell."""
        return None

    @abstractmethod
    async def solutions_by_address_and_time_range(
        self, address: str, begin: int, end: int
    ) -> List[Reward]:
        """Solution rewards of ``address`` with ``begin <= timestamp <= end``."""

    async def close(self) -> None:
        """Release resources held by the store."""
