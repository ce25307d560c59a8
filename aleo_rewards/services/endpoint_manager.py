"""
Block source client with endpoint failover.

Every request goes to the endpoint at the front of the rotation. A request
is retried with exponential backoff while failures are transient; once the
retry budget is spent the endpoint is moved to the back of the rotation and
the request starts over against the new front endpoint. Unless a rotation
limit is given this loops until some endpoint answers.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

import aiohttp
import structlog
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from aleo_rewards.core.config import Settings
from aleo_rewards.core.exceptions import (
    ConfigurationError,
    EndpointsExhaustedError,
    MalformedResponseError,
    TransientNetworkError,
)
from aleo_rewards.indexer.core.types import Block
from .retry import RetryPolicy


logger = structlog.get_logger(__name__)

_BLOCK_LIST = TypeAdapter(List[Block])


@dataclass
class EndpointStats:
    """Statistics for a single block source endpoint."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rotations: int = 0
    total_response_time: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


class EndpointManager:
    """
    HTTP client over an ordered list of block source base URLs.

    Usage:
        async with EndpointManager(["https://api.example/testnet3"]) as source:
            tip = await source.latest_height()
    """

    def __init__(
        self,
        api_urls: List[str],
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        urls = [url.rstrip("/") for url in api_urls if url]
        if not urls:
            raise ConfigurationError("EndpointManager needs at least one URL")

        self.logger = logger.bind(service="endpoint_manager")
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

        self._endpoints: Deque[str] = deque(urls)
        self._lock = asyncio.Lock()
        self._session = session
        self._owns_session = session is None
        self.stats: Dict[str, EndpointStats] = {url: EndpointStats() for url in urls}

    @classmethod
    def from_settings(cls, config: Settings) -> "EndpointManager":
        return cls(
            config.api_urls,
            retry_policy=RetryPolicy.from_settings(config),
            timeout=config.request_timeout,
        )

    async def __aenter__(self) -> "EndpointManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP session if this manager created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    @property
    def endpoints(self) -> List[str]:
        """Current rotation order, front first."""
        return list(self._endpoints)

    @property
    def current_endpoint(self) -> str:
        return self._endpoints[0]

    async def _rotate(self, failed_endpoint: str):
        """Move ``failed_endpoint`` to the back unless another caller already did."""
        async with self._lock:
            if self._endpoints[0] != failed_endpoint:
                return
            self._endpoints.rotate(-1)
            self.stats[failed_endpoint].rotations += 1
            next_endpoint = self._endpoints[0]

        self.logger.warning(
            "Rotating block source endpoint",
            failed=failed_endpoint,
            next=next_endpoint
        )

    async def _get_once(self, endpoint: str, path: str) -> bytes:
        url = f"{endpoint}{path}"
        stats = self.stats[endpoint]
        stats.total_requests += 1
        start_time = time.monotonic()

        try:
            async with self._get_session().get(url) as response:
                status = response.status
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._record_failure(stats, f"{type(e).__name__}: {e}")
            raise TransientNetworkError(
                f"Request to {url} failed: {e}",
                {"url": url, "error_type": type(e).__name__}
            )

        if status >= 500 or status == 429:
            self._record_failure(stats, f"HTTP {status}")
            raise TransientNetworkError(
                f"{url} answered {status}",
                {"url": url, "status": status}
            )
        if status != 200:
            self._record_failure(stats, f"HTTP {status}")
            raise MalformedResponseError(
                f"{url} answered {status}",
                {"url": url, "status": status, "body": body[:200].decode(errors="replace")}
            )

        stats.successful_requests += 1
        stats.total_response_time += time.monotonic() - start_time
        return body

    @staticmethod
    def _record_failure(stats: EndpointStats, error: str):
        stats.failed_requests += 1
        stats.last_error = error
        stats.last_error_time = datetime.utcnow()

    async def fetch(self, path: str, max_rotations: Optional[int] = None) -> bytes:
        """
        GET ``path`` from the front endpoint with retry and failover.

        Args:
            path: Resource path relative to the base URL, e.g. ``/latest/height``
            max_rotations: Give up after this many endpoint rotations
                (None retries forever)

        Returns:
            Raw response body

        Raises:
            MalformedResponseError: Non-retryable non-200 answer
            EndpointsExhaustedError: ``max_rotations`` reached
        """
        rotations = 0

        while True:
            endpoint = self._endpoints[0]
            try:
                return await self.retry_policy.call(self._get_once, endpoint, path)
            except TransientNetworkError as e:
                self.logger.error(
                    "Retry budget exhausted for endpoint",
                    endpoint=endpoint,
                    path=path,
                    error=str(e)
                )
                await self._rotate(endpoint)
                rotations += 1
                if max_rotations is not None and rotations >= max_rotations:
                    raise EndpointsExhaustedError(path, rotations)

    # Convenience methods for the block source API
    async def latest_height(self, max_rotations: Optional[int] = None) -> int:
        """Current chain tip height."""
        body = await self.fetch("/latest/height", max_rotations)
        try:
            return int(body.decode().strip().strip('"'))
        except (UnicodeDecodeError, ValueError):
            raise MalformedResponseError(
                "Chain height is not an integer",
                {"body": body[:100].decode(errors="replace")}
            )

    async def get_block(self, height: int, max_rotations: Optional[int] = None) -> Block:
        """Single block at ``height``."""
        body = await self.fetch(f"/block/{height}", max_rotations)
        try:
            return Block.model_validate_json(body)
        except PydanticValidationError as e:
            raise MalformedResponseError(
                f"Failed to deserialize block {height}",
                {"height": height, "error": str(e)}
            )

    async def get_blocks(self, start: int, end: int, max_rotations: Optional[int] = None) -> List[Block]:
        """Blocks in the half-open range ``[start, end)``."""
        body = await self.fetch(f"/blocks?start={start}&end={end}", max_rotations)
        try:
            return _BLOCK_LIST.validate_json(body)
        except PydanticValidationError as e:
            raise MalformedResponseError(
                f"Failed to deserialize blocks {start} to {end}",
                {"start": start, "end": end, "error": str(e)}
            )

    def get_stats(self) -> Dict[str, Any]:
        """Per-endpoint statistics in rotation order."""
        return {
            "endpoints": {
                url: {**asdict(self.stats[url]), "success_rate": self.stats[url].success_rate}
                for url in self._endpoints
            },
            "current": self.current_endpoint,
        }
