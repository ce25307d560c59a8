"""
Messages carried from the reward engine to the reward store.
"""

from dataclasses import dataclass
from typing import Union

from .types import Block


@dataclass(frozen=True)
class SolutionRewardEvent:
    """Reward paid to one partial solution of a block."""
    block_height: int
    address: str
    nonce: int
    commitment: str
    reward: int
    timestamp: int

    name = "solution"


@dataclass(frozen=True)
class BlockRewardEvent:
    """Block-level reward detail."""
    block: Block
    solutions_num: int
    block_reward: int

    name = "block_reward"


@dataclass(frozen=True)
class HeightAdvancedEvent:
    """The block at ``height`` is fully processed."""
    height: int

    name = "sync_height"


Message = Union[SolutionRewardEvent, BlockRewardEvent, HeightAdvancedEvent]
