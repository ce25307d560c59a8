"""
Common Pydantic schemas for API responses.
"""

from typing import Generic, List, TypeVar

from pydantic import BaseModel

from aleo_rewards.storage.base import Reward


T = TypeVar("T")


class Response(BaseModel, Generic[T]):
    """Envelope used by every endpoint: code 0 means success."""
    code: int = 0
    message: str = "success"
    data: T


class RewardsResponse(Response[List[Reward]]):
    """Solution rewards of one address."""


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str

