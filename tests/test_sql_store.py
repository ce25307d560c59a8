"""
Test the SQL reward store against a throwaway SQLite database.
"""

import pytest

from aleo_rewards.core.config import Settings
from aleo_rewards.core.database import Database, DatabaseManager, get_database_url
from aleo_rewards.core.exceptions import SinkError
from aleo_rewards.indexer.core.messages import BlockRewardEvent, SolutionRewardEvent
from aleo_rewards.storage.sql_store import SqlRewardStore

from conftest import make_block


@pytest.fixture
async def sql_store(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}", Settings(debug=False))
    await DatabaseManager.create_tables(database)
    store = SqlRewardStore(database)
    yield store
    await store.close()


def solution(height: int, address: str, reward: int, timestamp: int) -> SolutionRewardEvent:
    return SolutionRewardEvent(
        block_height=height,
        address=address,
        nonce=height * 10,
        commitment=f"puzzle{height}",
        reward=reward,
        timestamp=timestamp,
    )


async def test_empty_store_has_no_height(sql_store):
    assert await sql_store.latest_height() is None


async def test_query_by_address_and_time_range(sql_store):
    await sql_store.record_solutions([
        solution(10, "aleo1alice", 150, 1000),
        solution(10, "aleo1bob", 350, 1000),
    ])
    await sql_store.record_solution(solution(11, "aleo1alice", 200, 1015))
    await sql_store.record_solution(solution(12, "aleo1alice", 250, 1030))

    rewards = await sql_store.solutions_by_address_and_time_range("aleo1alice", 1000, 1015)

    assert [(r.height, r.reward, r.nonce) for r in rewards] == [(10, 150, 100), (11, 200, 110)]
    assert await sql_store.solutions_by_address_and_time_range("aleo1carol", 0, 5000) == []
    assert await sql_store.latest_height() == 12


async def test_record_block(sql_store):
    block = make_block(20, [("aleo1alice", 300)])

    await sql_store.record_block(BlockRewardEvent(block=block, solutions_num=1, block_reward=500))

    assert await sql_store.latest_height() == 20


async def test_duplicate_block_is_a_sink_error(sql_store):
    event = BlockRewardEvent(block=make_block(20), solutions_num=0, block_reward=0)
    await sql_store.record_block(event)

    with pytest.raises(SinkError):
        await sql_store.record_block(event)


async def test_health_check(sql_store):
    assert await DatabaseManager.health_check(sql_store.database)


@pytest.mark.parametrize("url, expected", [
    ("postgresql://u:p@db/aleo", "postgresql+asyncpg://u:p@db/aleo"),
    ("mysql://u:p@db/aleo", "mysql+aiomysql://u:p@db/aleo"),
    ("sqlite:///./aleo.db", "sqlite+aiosqlite:///./aleo.db"),
    ("sqlite+aiosqlite:///./aleo.db", "sqlite+aiosqlite:///./aleo.db"),
])
def test_async_driver_urls(url, expected):
    assert get_database_url(url) == expected
