"""
Coinbase reward schedule.

The block reward decreases linearly to zero at the year-10 anchor height,
so that the rewards of all blocks up to that height sum to the starting
supply. A block is paid in full only when at least ``anchor_time`` seconds
have passed since the last coinbase; faster blocks get a proportional share.

The schedule is injected into the reward engine as a plain callable, so a
different protocol version can be plugged in without touching the engine.
"""

from typing import Callable

from aleo_rewards.core.exceptions import RewardOverflowError


SECONDS_PER_YEAR = 60 * 60 * 24 * 365
U64_MAX = 2**64 - 1

# Testnet3 network parameters
STARTING_SUPPLY = 1_000_000_000_000_000  # microcredits
ANCHOR_TIME = 25  # seconds

# (last_coinbase_timestamp, timestamp, height, starting_supply, anchor_time) -> reward
CoinbaseRewardFn = Callable[[int, int, int, int, int], int]


def anchor_block_height(anchor_time: int, num_years: int) -> int:
    """Block height reached after ``num_years`` at one block per ``anchor_time`` seconds."""
    return (SECONDS_PER_YEAR // anchor_time) * num_years


def coinbase_reward(
    last_coinbase_timestamp: int,
    timestamp: int,
    height: int,
    starting_supply: int = STARTING_SUPPLY,
    anchor_time: int = ANCHOR_TIME,
) -> int:
    """
    Coinbase reward for the block at ``height``.

    Args:
        last_coinbase_timestamp: Timestamp of the previous coinbase
        timestamp: Timestamp of this block
        height: Height of this block
        starting_supply: Network starting supply in microcredits
        anchor_time: Target seconds between coinbases

    Returns:
        Reward in microcredits, a u64
    """
    if anchor_time <= 0:
        raise ValueError("anchor_time must be positive")

    anchor_height = anchor_block_height(anchor_time, 10)
    remaining_blocks = max(anchor_height - height, 0)

    # 2 * S * remaining / (H * (H + 1)) sums to S over heights 1..H
    anchor_reward = (2 * starting_supply * remaining_blocks) // (anchor_height * (anchor_height + 1))

    time_elapsed = min(max(timestamp - last_coinbase_timestamp, 0), anchor_time)
    reward = anchor_reward * time_elapsed // anchor_time

    if reward > U64_MAX:
        raise RewardOverflowError(
            f"Coinbase reward at height {height} exceeds u64",
            {"height": height, "reward": reward}
        )
    return reward
