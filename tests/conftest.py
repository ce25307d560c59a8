"""
Shared fixtures: block factories, an in-memory reward store and a
scripted block source.
"""

import asyncio
import random
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest
from aiohttp import test_utils, web

from aleo_rewards.core.exceptions import MalformedResponseError
from aleo_rewards.indexer.core.messages import BlockRewardEvent, SolutionRewardEvent
from aleo_rewards.indexer.core.types import Block
from aleo_rewards.indexer.dispatcher import EventDispatcher
from aleo_rewards.indexer.height_cursor import HeightCursor
from aleo_rewards.services.reward_engine import RewardEngine
from aleo_rewards.storage.base import Reward, RewardStore


ROUND_OFFSET = 100
GENESIS_TIMESTAMP = 1_680_000_000
BLOCK_TIME = 15


def make_block(
    height: int,
    solutions: Iterable[Tuple[str, int]] = (),
    round: Optional[int] = None,
    timestamp: Optional[int] = None,
) -> Block:
    """Block at ``height`` whose coinbase holds ``(address, target)`` solutions."""
    solutions = list(solutions)
    timestamp = GENESIS_TIMESTAMP + BLOCK_TIME * height if timestamp is None else timestamp
    data = {
        "block_hash": f"ab1hash{height}",
        "previous_hash": f"ab1hash{height - 1}",
        "header": {
            "metadata": {
                "network": 3,
                "round": height + ROUND_OFFSET if round is None else round,
                "height": height,
                "coinbase_target": 1000,
                "proof_target": 100,
                "last_coinbase_target": 1000,
                "last_coinbase_timestamp": timestamp - BLOCK_TIME,
                "timestamp": timestamp,
            }
        },
        "coinbase": None,
    }
    if solutions:
        data["coinbase"] = {
            "partial_solutions": [
                {"address": address, "nonce": height * 1000 + i, "commitment": f"puzzle{height}_{i}", "target": target}
                for i, (address, target) in enumerate(solutions)
            ]
        }
    return Block.model_validate(data)


def make_chain(start: int, end: int) -> Dict[int, Block]:
    """Blocks ``start..end`` inclusive, every one with two solutions."""
    return {
        height: make_block(height, [("aleo1alice", 300 + height), ("aleo1bob", 700)])
        for height in range(start, end + 1)
    }


class MemoryRewardStore(RewardStore):
    """Reward store keeping everything in lists."""

    def __init__(self, fail_on_height: Optional[int] = None):
        self.blocks: List[BlockRewardEvent] = []
        self.solutions: List[SolutionRewardEvent] = []
        self.fail_on_height = fail_on_height
        self.closed = False

    async def record_block(self, event: BlockRewardEvent) -> None:
        self.blocks.append(event)

    async def record_solution(self, event: SolutionRewardEvent) -> None:
        if event.block_height == self.fail_on_height:
            raise RuntimeError(f"store rejected block {event.block_height}")
        self.solutions.append(event)

    async def latest_height(self) -> Optional[int]:
        heights = [e.block_height for e in self.solutions] + [e.block.height for e in self.blocks]
        return max(heights) if heights else None

    async def solutions_by_address_and_time_range(self, address: str, begin: int, end: int) -> List[Reward]:
        return [
            Reward(address=e.address, height=e.block_height, nonce=e.nonce, reward=e.reward, timestamp=e.timestamp)
            for e in self.solutions
            if e.address == address and begin <= e.timestamp <= end
        ]

    async def close(self) -> None:
        self.closed = True


class FakeSource:
    """
    Scripted stand-in for EndpointManager.

    ``tips`` are served in order by ``latest_height``; the last value
    repeats. ``delays`` maps a window start to an artificial fetch delay.
    """

    current_endpoint = "http://fake"

    def __init__(
        self,
        chain: Dict[int, Block],
        tips: Sequence[int],
        delays: Optional[Dict[int, float]] = None,
        fail_windows: Iterable[int] = (),
    ):
        self.chain = chain
        self.tips = list(tips)
        self.delays = delays or {}
        self.fail_windows = set(fail_windows)
        self.block_requests: List[int] = []
        self.window_requests: List[Tuple[int, int]] = []
        self.window_completions: List[int] = []
        self.block_errors: Dict[int, int] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def latest_height(self, max_rotations=None) -> int:
        if len(self.tips) > 1:
            return self.tips.pop(0)
        return self.tips[0]

    async def get_block(self, height: int, max_rotations=None) -> Block:
        self.block_requests.append(height)
        if self.block_errors.get(height, 0) > 0:
            self.block_errors[height] -= 1
            raise MalformedResponseError(f"block {height} unavailable")
        return self.chain[height]

    async def get_blocks(self, start: int, end: int, max_rotations=None) -> List[Block]:
        self.window_requests.append((start, end))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(start, 0))
        finally:
            self.in_flight -= 1
        self.window_completions.append(start)
        if start in self.fail_windows:
            raise MalformedResponseError(f"blocks {start} to {end} unavailable")
        return [self.chain[h] for h in range(start, end) if h in self.chain]

    async def close(self):
        pass


class RecordingEngine(RewardEngine):
    """Reward engine remembering the order blocks were processed in."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.processed: List[int] = []

    def process(self, current, previous):
        result = super().process(current, previous)
        self.processed.append(current.height)
        return result


@pytest.fixture
def memory_store() -> MemoryRewardStore:
    return MemoryRewardStore()


@pytest.fixture
def cursor(tmp_path) -> HeightCursor:
    return HeightCursor(tmp_path / "block_height.sync")


@pytest.fixture
async def dispatcher(memory_store, cursor):
    dispatcher = EventDispatcher(memory_store, cursor, queue_size=64)
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine(reward_fn=lambda *args: 1000)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(20230401)


@pytest.fixture
async def serve():
    """Start local aiohttp servers; returns a ``/testnet3`` base URL per handler."""
    servers = []

    async def start(handler) -> str:
        app = web.Application()
        app.router.add_route("GET", "/{tail:.*}", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/testnet3"))

    yield start

    for server in servers:
        await server.close()
