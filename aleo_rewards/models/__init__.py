"""
Database models for the rewards indexer.

Tables mirror the reward events produced by the pipeline:
one row per recorded block and one row per rewarded solution.
"""

from .base import Base
from .reward import BlockRecord, SolutionRecord

__all__ = [
    "Base",
    "BlockRecord",
    "SolutionRecord",
]
