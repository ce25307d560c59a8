"""
Reward engine - splits a block's coinbase reward across its partial solutions.

Prover compensation is defined as:
    1/2 * coinbase_reward * (prover_target / cumulative_prover_target)
    = (coinbase_reward * prover_target) // (2 * cumulative_prover_target)

All intermediate values are checked against u128 and every prover reward
against u64. Flooring means the distributed total never exceeds
coinbase_reward // 2; the remainder is not redistributed.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, List, Optional

import structlog

from aleo_rewards.core.config import Settings
from aleo_rewards.core.exceptions import DataInvariantError, RewardOverflowError
from aleo_rewards.indexer.core.messages import (
    BlockRewardEvent,
    HeightAdvancedEvent,
    Message,
    SolutionRewardEvent,
)
from aleo_rewards.indexer.core.types import Block, PartialSolution, PreviousBlockState
from .coinbase import ANCHOR_TIME, STARTING_SUPPLY, CoinbaseRewardFn, coinbase_reward

if TYPE_CHECKING:
    from aleo_rewards.indexer.dispatcher import EventDispatcher


logger = structlog.get_logger(__name__)

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


@dataclass(frozen=True)
class SolutionReward:
    """Reward computed for one partial solution."""
    solution: PartialSolution
    reward: int


@dataclass
class BlockRewards:
    """Outcome of processing one block."""
    block: Block
    coinbase_reward: int = 0
    total_reward: int = 0
    solution_rewards: List[SolutionReward] = field(default_factory=list)
    events: List[Message] = field(default_factory=list)

    @property
    def matched(self) -> List[SolutionRewardEvent]:
        return [event for event in self.events if isinstance(event, SolutionRewardEvent)]


def _checked_u128(value: int, what: str, height: int) -> int:
    if value > U128_MAX:
        raise RewardOverflowError(
            f"{what} overflows u128 at block {height}",
            {"height": height, "value": value}
        )
    return value


class RewardEngine:
    """
    Computes coinbase reward splits block by block.

    The engine itself holds no chain state: each call receives the state
    of the immediately preceding block.
    """

    def __init__(
        self,
        tracked_addresses: Optional[Iterable[str]] = None,
        store_block: bool = False,
        reward_fn: CoinbaseRewardFn = coinbase_reward,
        starting_supply: int = STARTING_SUPPLY,
        anchor_time: int = ANCHOR_TIME,
    ):
        self.logger = logger.bind(service="reward_engine")
        self.tracked_addresses = frozenset(tracked_addresses or ())
        self.store_block = store_block
        self.reward_fn = reward_fn
        self.starting_supply = starting_supply
        self.anchor_time = anchor_time

    @classmethod
    def from_settings(cls, config: Settings, reward_fn: CoinbaseRewardFn = coinbase_reward) -> "RewardEngine":
        return cls(
            tracked_addresses=config.tracked_addresses,
            store_block=config.store_block,
            reward_fn=reward_fn,
            starting_supply=config.starting_supply,
            anchor_time=config.anchor_time,
        )

    def is_tracked(self, address: str) -> bool:
        return not self.tracked_addresses or address in self.tracked_addresses

    @staticmethod
    def check_continuity(current: Block, previous: PreviousBlockState):
        """Raise DataInvariantError unless ``current`` directly follows ``previous``."""
        if current.height != previous.height + 1:
            raise DataInvariantError(
                f"Block height {current.height} does not follow {previous.height}",
                {"height": current.height, "previous_height": previous.height}
            )
        if current.round != previous.round + 1:
            raise DataInvariantError(
                f"Block round {current.round} does not follow {previous.round} at height {current.height}",
                {"height": current.height, "round": current.round, "previous_round": previous.round}
            )

    def split(self, coinbase: int, solutions: List[PartialSolution], height: int) -> List[SolutionReward]:
        """Per-solution rewards for a coinbase of ``coinbase`` microcredits."""
        cumulative_target = 0
        for solution in solutions:
            cumulative_target = _checked_u128(
                cumulative_target + solution.proof_target, "Cumulative proof target", height
            )
        if cumulative_target == 0:
            raise DataInvariantError(
                f"Cumulative proof target is zero at block {height}",
                {"height": height, "solutions": len(solutions)}
            )

        denominator = _checked_u128(cumulative_target * 2, "Reward denominator", height)

        rewards = []
        for solution in solutions:
            numerator = _checked_u128(coinbase * solution.proof_target, "Reward numerator", height)
            prover_reward = numerator // denominator
            if prover_reward > U64_MAX:
                raise RewardOverflowError(
                    f"Prover reward exceeds u64 at block {height}",
                    {"height": height, "address": solution.address, "reward": prover_reward}
                )
            rewards.append(SolutionReward(solution=solution, reward=prover_reward))
        return rewards

    def process(self, current: Block, previous: PreviousBlockState) -> BlockRewards:
        """
        Compute the reward split for ``current``.

        Args:
            current: Block to process
            previous: State of the block at ``current.height - 1``

        Returns:
            BlockRewards whose events end with exactly one HeightAdvancedEvent

        Raises:
            DataInvariantError: Height or round discontinuity, zero target
            RewardOverflowError: Arithmetic outside checked bounds
        """
        self.check_continuity(current, previous)

        result = BlockRewards(block=current)
        solutions = current.partial_solutions

        if solutions:
            result.coinbase_reward = self.reward_fn(
                previous.last_coinbase_timestamp,
                current.timestamp,
                current.height,
                self.starting_supply,
                self.anchor_time,
            )
            if not 0 <= result.coinbase_reward <= U64_MAX:
                raise RewardOverflowError(
                    f"Coinbase reward out of u64 range at block {current.height}",
                    {"height": current.height, "reward": result.coinbase_reward}
                )

            result.solution_rewards = self.split(result.coinbase_reward, solutions, current.height)
            result.total_reward = min(sum(sr.reward for sr in result.solution_rewards), U64_MAX)

            for solution_reward in result.solution_rewards:
                solution = solution_reward.solution
                if not self.is_tracked(solution.address):
                    continue
                result.events.append(SolutionRewardEvent(
                    block_height=current.height,
                    address=solution.address,
                    nonce=solution.nonce,
                    commitment=solution.commitment,
                    reward=solution_reward.reward,
                    timestamp=current.timestamp,
                ))

            if result.events and self.store_block:
                result.events.append(BlockRewardEvent(
                    block=current,
                    solutions_num=len(solutions),
                    block_reward=result.total_reward,
                ))

            self.logger.debug(
                "Block coinbase reward computed",
                height=current.height,
                coinbase_reward=result.coinbase_reward,
                total_reward=result.total_reward,
                solutions=len(solutions),
                matched=len(result.matched)
            )
        else:
            self.logger.debug("Block had no solutions", height=current.height)

        result.events.append(HeightAdvancedEvent(height=current.height))
        return result

    async def process_and_emit(
        self,
        current: Block,
        previous: PreviousBlockState,
        dispatcher: "EventDispatcher",
    ) -> BlockRewards:
        """Process ``current`` and hand its events to ``dispatcher`` in order."""
        result = self.process(current, previous)
        for event in result.events:
            await dispatcher.emit(event)
        return result
