"""
Reward models - blocks with their coinbase reward and per-solution payouts.
"""

from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class BlockRecord(Base):
    """Block-level reward detail, stored only when block storage is enabled."""

    __tablename__ = "blocks"

    block_height: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
        comment="Block height"
    )

    block_hash: Mapped[str] = mapped_column(String(128), comment="Block hash")

    previous_block_hash: Mapped[str] = mapped_column(
        String(128),
        comment="Hash of the parent block"
    )

    network: Mapped[int] = mapped_column(Integer, default=3, comment="Network id")

    coinbase_target: Mapped[int] = mapped_column(BigInteger, default=0)
    proof_target: Mapped[int] = mapped_column(BigInteger, default=0)
    last_coinbase_target: Mapped[int] = mapped_column(BigInteger, default=0)
    last_coinbase_timestamp: Mapped[int] = mapped_column(BigInteger, default=0)

    timestamp: Mapped[int] = mapped_column(BigInteger, comment="Block timestamp (unix seconds)")

    solutions_num: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of partial solutions in the coinbase"
    )

    # u64 does not fit a signed BIGINT
    block_reward: Mapped[int] = mapped_column(
        Numeric(20, 0),
        default=0,
        comment="Sum of prover rewards in microcredits"
    )

    __table_args__ = (
        Index("idx_blocks_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<BlockRecord(height={self.block_height}, reward={self.block_reward})>"


class SolutionRecord(Base):
    """Reward paid to a single partial solution."""

    __tablename__ = "block_solutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    block_height: Mapped[int] = mapped_column(BigInteger, comment="Block height")

    address: Mapped[str] = mapped_column(String(72), comment="Prover address")

    nonce: Mapped[int] = mapped_column(Numeric(20, 0), comment="Solution nonce (u64)")

    commitment: Mapped[Optional[str]] = mapped_column(
        String(128),
        comment="Solution commitment"
    )

    solution_reward: Mapped[int] = mapped_column(
        Numeric(20, 0),
        comment="Prover reward in microcredits"
    )

    timestamp: Mapped[int] = mapped_column(BigInteger, comment="Block timestamp (unix seconds)")

    __table_args__ = (
        Index("idx_block_solutions_address_time", "address", "timestamp"),
        Index("idx_block_solutions_height", "block_height"),
    )

    def __repr__(self) -> str:
        return f"<SolutionRecord(height={self.block_height}, address={self.address}, reward={self.solution_reward})>"
