"""
Core types for block ingestion.
"""

from .types import Block, CoinbaseSolution, PartialSolution, PreviousBlockState
from .messages import (
    BlockRewardEvent,
    HeightAdvancedEvent,
    Message,
    SolutionRewardEvent,
)

__all__ = [
    "Block",
    "CoinbaseSolution",
    "PartialSolution",
    "PreviousBlockState",
    "BlockRewardEvent",
    "HeightAdvancedEvent",
    "Message",
    "SolutionRewardEvent",
]
