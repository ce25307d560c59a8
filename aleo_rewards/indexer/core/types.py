"""
Core types for block ingestion.

Blocks are served as snarkVM JSON: chain position and timing live in
``header.metadata``, hashes and the coinbase solution set at the top level.
A flat object carrying the same keys at the top level is accepted as well.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1

# Keys pulled up from header.metadata
METADATA_KEYS = (
    "network",
    "round",
    "height",
    "coinbase_target",
    "proof_target",
    "last_coinbase_target",
    "last_coinbase_timestamp",
    "timestamp",
)


class PartialSolution(BaseModel):
    """A prover's contribution to a block's coinbase."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    address: str
    nonce: int = Field(ge=0, le=U64_MAX)
    commitment: str = ""
    proof_target: int = Field(alias="target", ge=0, le=U64_MAX)


class CoinbaseSolution(BaseModel):
    """The set of partial solutions included in a block."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    partial_solutions: List[PartialSolution] = Field(default_factory=list)


class Block(BaseModel):
    """A fetched block. Immutable once parsed."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    height: int = Field(ge=0, le=U32_MAX)
    round: int = Field(ge=0)
    timestamp: int
    previous_hash: str = ""
    block_hash: str = ""
    network: int = 3
    coinbase_target: int = 0
    proof_target: int = 0
    last_coinbase_target: int = 0
    last_coinbase_timestamp: int = 0
    coinbase: Optional[CoinbaseSolution] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_header(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        header = data.get("header")
        if not isinstance(header, dict):
            return data
        metadata = header.get("metadata") or {}
        flat = {key: value for key, value in data.items() if key != "header"}
        for key in METADATA_KEYS:
            if key in metadata and key not in flat:
                flat[key] = metadata[key]
        return flat

    @property
    def partial_solutions(self) -> List[PartialSolution]:
        if self.coinbase is None:
            return []
        return self.coinbase.partial_solutions


@dataclass(frozen=True)
class PreviousBlockState:
    """Minimal carry from one processed block to the next."""
    height: int
    round: int
    timestamp: int
    last_coinbase_timestamp: int

    @classmethod
    def from_block(cls, block: Block) -> "PreviousBlockState":
        return cls(
            height=block.height,
            round=block.round,
            timestamp=block.timestamp,
            last_coinbase_timestamp=block.last_coinbase_timestamp,
        )
