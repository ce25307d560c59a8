"""
Test reward computation and split rules.
"""

import pytest

from aleo_rewards.core.exceptions import DataInvariantError, RewardOverflowError
from aleo_rewards.indexer.core.messages import BlockRewardEvent, HeightAdvancedEvent, SolutionRewardEvent
from aleo_rewards.indexer.core.types import PreviousBlockState
from aleo_rewards.services.reward_engine import RewardEngine

from conftest import make_block


def previous_of(height: int) -> PreviousBlockState:
    return PreviousBlockState.from_block(make_block(height))


def fixed_reward(amount: int):
    return lambda *args: amount


def test_split_example():
    engine = RewardEngine(reward_fn=fixed_reward(1000))
    block = make_block(11, [("aleo1alice", 300), ("aleo1bob", 700)])

    result = engine.process(block, previous_of(10))

    assert [sr.reward for sr in result.solution_rewards] == [150, 350]
    assert result.total_reward == 500
    assert result.coinbase_reward == 1000


def test_empty_block_still_advances_height():
    engine = RewardEngine(reward_fn=fixed_reward(1000), store_block=True)

    result = engine.process(make_block(11), previous_of(10))

    assert result.total_reward == 0
    assert result.solution_rewards == []
    assert result.events == [HeightAdvancedEvent(height=11)]


def test_height_discontinuity_is_fatal():
    engine = RewardEngine(reward_fn=fixed_reward(1000))

    with pytest.raises(DataInvariantError):
        engine.process(make_block(12), previous_of(10))


def test_round_discontinuity_is_fatal():
    engine = RewardEngine(reward_fn=fixed_reward(1000))
    block = make_block(11, round=make_block(10).round + 2)

    with pytest.raises(DataInvariantError):
        engine.process(block, previous_of(10))


def test_reward_never_exceeds_half_coinbase(rng):
    engine = RewardEngine()
    for _ in range(200):
        coinbase = rng.randrange(0, 2**64)
        targets = [rng.randrange(1, 2**64) for _ in range(rng.randrange(1, 12))]
        solutions = [(f"aleo1p{i}", t) for i, t in enumerate(targets)]

        rewards = engine.split(coinbase, [s for s in make_block(1, solutions).partial_solutions], 1)

        assert sum(r.reward for r in rewards) <= coinbase // 2


def test_single_solution_takes_half_coinbase():
    engine = RewardEngine(reward_fn=fixed_reward(1001))

    result = engine.process(make_block(11, [("aleo1alice", 12345)]), previous_of(10))

    assert result.total_reward == 500


def test_widened_arithmetic_for_large_values():
    engine = RewardEngine(reward_fn=fixed_reward(2**64 - 1))
    block = make_block(11, [("aleo1alice", 2**64 - 1), ("aleo1bob", 2**64 - 1)])

    result = engine.process(block, previous_of(10))

    expected = (2**64 - 1) * (2**64 - 1) // (2 * 2 * (2**64 - 1))
    assert [sr.reward for sr in result.solution_rewards] == [expected, expected]


def test_coinbase_out_of_range_is_rejected():
    engine = RewardEngine(reward_fn=fixed_reward(2**64))

    with pytest.raises(RewardOverflowError):
        engine.process(make_block(11, [("aleo1alice", 1)]), previous_of(10))


def test_zero_cumulative_target_is_rejected():
    engine = RewardEngine(reward_fn=fixed_reward(1000))

    with pytest.raises(DataInvariantError):
        engine.process(make_block(11, [("aleo1alice", 0)]), previous_of(10))


def test_address_filter_selects_solution_events():
    engine = RewardEngine(tracked_addresses=["aleo1bob"], reward_fn=fixed_reward(1000))
    block = make_block(11, [("aleo1alice", 300), ("aleo1bob", 700)])

    result = engine.process(block, previous_of(10))

    solution_events = [e for e in result.events if isinstance(e, SolutionRewardEvent)]
    assert [(e.address, e.reward) for e in solution_events] == [("aleo1bob", 350)]
    assert result.total_reward == 500


def test_block_event_requires_match_and_store_flag():
    block = make_block(11, [("aleo1alice", 300), ("aleo1bob", 700)])

    stored = RewardEngine(store_block=True, reward_fn=fixed_reward(1000)).process(block, previous_of(10))
    not_stored = RewardEngine(store_block=False, reward_fn=fixed_reward(1000)).process(block, previous_of(10))
    unmatched = RewardEngine(
        tracked_addresses=["aleo1carol"], store_block=True, reward_fn=fixed_reward(1000)
    ).process(block, previous_of(10))

    block_events = [e for e in stored.events if isinstance(e, BlockRewardEvent)]
    assert len(block_events) == 1
    assert block_events[0].solutions_num == 2
    assert block_events[0].block_reward == 500
    assert not any(isinstance(e, BlockRewardEvent) for e in not_stored.events)
    assert unmatched.events == [HeightAdvancedEvent(height=11)]


def test_height_event_is_last_and_unique():
    engine = RewardEngine(store_block=True, reward_fn=fixed_reward(1000))
    block = make_block(11, [("aleo1alice", 300), ("aleo1bob", 700)])

    result = engine.process(block, previous_of(10))

    height_events = [e for e in result.events if isinstance(e, HeightAdvancedEvent)]
    assert height_events == [HeightAdvancedEvent(height=11)]
    assert result.events[-1] == HeightAdvancedEvent(height=11)


def test_reward_fn_receives_previous_coinbase_timestamp():
    calls = []

    def reward_fn(*args):
        calls.append(args)
        return 10

    engine = RewardEngine(reward_fn=reward_fn, starting_supply=5, anchor_time=7)
    previous = previous_of(10)
    block = make_block(11, [("aleo1alice", 1)])

    engine.process(block, previous)

    assert calls == [(previous.last_coinbase_timestamp, block.timestamp, 11, 5, 7)]


async def test_process_and_emit_preserves_order(engine, dispatcher, memory_store, cursor):
    block = make_block(11, [("aleo1alice", 300), ("aleo1bob", 700)])

    await engine.process_and_emit(block, previous_of(10), dispatcher)
    await dispatcher.drain()

    assert [(e.address, e.reward) for e in memory_store.solutions] == [("aleo1alice", 150), ("aleo1bob", 350)]
    assert cursor.read() == 11
