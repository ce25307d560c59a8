"""
Reward stores.
"""

from .base import Reward, RewardStore
from .sql_store import SqlRewardStore

__all__ = [
    "Reward",
    "RewardStore",
    "SqlRewardStore",
]
