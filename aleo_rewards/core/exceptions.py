"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class AleoRewardsException(Exception):
    """Base exception class for the rewards indexer."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(AleoRewardsException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(AleoRewardsException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class IndexerError(AleoRewardsException):
    """Raised when there's an indexer error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INDEXER_ERROR", details)


# Block source exceptions
class BlockSourceError(AleoRewardsException):
    """Base class for failures talking to a block source."""

    def __init__(
        self,
        message: str,
        code: str = "BLOCK_SOURCE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, details)


class TransientNetworkError(BlockSourceError):
    """Connection error, timeout, 5xx or rate limit. Safe to retry."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TRANSIENT_NETWORK_ERROR", details)


class MalformedResponseError(BlockSourceError):
    """Non-200 answer or a body that cannot be decoded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MALFORMED_RESPONSE", details)


class EndpointsExhaustedError(BlockSourceError):
    """Raised when a bounded endpoint rotation runs out of attempts."""

    def __init__(self, path: str, rotations: int):
        super().__init__(
            f"All endpoints failed for {path} after {rotations} rotations",
            "ENDPOINTS_EXHAUSTED",
            {"path": path, "rotations": rotations}
        )


# Data exceptions (fatal, never retried)
class DataInvariantError(AleoRewardsException):
    """Raised when fetched blocks break height or round continuity."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATA_INVARIANT_ERROR", details)


class RewardOverflowError(DataInvariantError):
    """Raised when reward arithmetic leaves its checked integer bounds."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "REWARD_OVERFLOW"


class SyncRangeError(IndexerError):
    """Raised when a batch range cannot be served by the source."""

    def __init__(self, start: int, end: int, reason: str):
        super().__init__(
            f"Invalid sync range [{start}, {end}): {reason}",
            {"start": start, "end": end, "reason": reason}
        )
        self.code = "SYNC_RANGE_ERROR"


class StartAboveStableHeightError(SyncRangeError):
    """Raised when the start height is already past the stable source height."""

    def __init__(self, start: int, stable: int):
        super().__init__(start, stable, f"start height is above the stable source height {stable}")
        self.stable = stable


# Persistence exceptions
class SinkError(DatabaseError):
    """Raised when the reward store rejects a write."""


class DispatcherStoppedError(IndexerError):
    """Raised when emitting into a dispatcher whose consumer has ended."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(
            "Event dispatcher is not running",
            {"reason": reason} if reason else None
        )
        self.code = "DISPATCHER_STOPPED"


class CursorError(AleoRewardsException):
    """Raised when the height cursor file is unreadable or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CURSOR_ERROR", details)
