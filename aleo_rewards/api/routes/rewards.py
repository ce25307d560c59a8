"""
Reward routes.
Serves solution rewards already recorded by the indexer.
"""

from fastapi import APIRouter, Depends, Request

import structlog

from aleo_rewards.api.schemas.common import RewardsResponse
from aleo_rewards.storage.base import RewardStore


logger = structlog.get_logger(__name__)

router = APIRouter()


def get_store(request: Request) -> RewardStore:
    """FastAPI dependency returning the store attached to the app."""
    return request.app.state.store


@router.get(
    "/testnet3/solutions/rewards/{address}/{begin}/{end}",
    response_model=RewardsResponse,
    summary="Solution Rewards",
    description="Rewards paid to an address between two unix timestamps (inclusive)"
)
async def get_solutions_rewards(
    address: str,
    begin: int,
    end: int,
    store: RewardStore = Depends(get_store),
):
    """Query failures are logged and answered with an empty list."""
    try:
        rewards = await store.solutions_by_address_and_time_range(address, begin, end)
    except Exception as e:
        logger.error("Failed to query solution rewards", address=address, error=str(e))
        rewards = []
    return RewardsResponse(data=rewards)
