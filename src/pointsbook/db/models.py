"""ORM models for the points ledger.

Users own their transactions and plays (cascade on delete). Round results
are shared, write-once rows keyed by round id.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pointsbook.db.base import Base, BigIntPK


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """One principal: superadmin, admin or end user."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        CheckConstraint("admin_used >= 0", name="ck_users_admin_used_non_negative"),
        CheckConstraint("admin_used <= admin_wallet", name="ck_users_admin_used_within_wallet"),
    )

    key: Mapped[str] = mapped_column(String(32), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True, unique=True)
    external_subject: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    points: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    admin_wallet: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    admin_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    password_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    created_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    plays: Mapped[list[Play]] = relationship(
        "Play", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def admin_remaining(self) -> int:
        return self.admin_wallet - self.admin_used


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class Transaction(Base):
    """Immutable record of one balance mutation."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        Index("ix_transactions_user_created", "user_key", "created_at"),
        Index("ix_transactions_acting_admin", "acting_admin_key", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_key: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.key", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(8), nullable=False)  # credit | debit
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    acting_admin_key: Mapped[str | None] = mapped_column(String(32), nullable=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="points")
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    play_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reverses_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="transactions")

    @property
    def signed_amount(self) -> int:
        return self.amount if self.type == "credit" else -self.amount


# ---------------------------------------------------------------------------
# Rounds
# ---------------------------------------------------------------------------


class Play(Base):
    """One user's stake on one round."""

    __tablename__ = "plays"
    __table_args__ = (
        CheckConstraint("stake > 0", name="ck_plays_stake_positive"),
        Index("ix_plays_user_created", "user_key", "created_at"),
        Index("ix_plays_round_outcome", "round_id", "outcome"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_key: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.key", ondelete="CASCADE"), nullable=False
    )
    round_id: Mapped[str] = mapped_column(String(16), nullable=False)
    selection: Mapped[str] = mapped_column(String(16), nullable=False)
    stake: Mapped[int] = mapped_column(BigInteger, nullable=False)
    outcome: Mapped[str] = mapped_column(String(8), nullable=False, default="pending")
    payout: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="plays")


class RoundResult(Base):
    """Derived outcome of one round window. At most one row per round id."""

    __tablename__ = "round_results"

    round_id: Mapped[str] = mapped_column(String(16), primary_key=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[str] = mapped_column(String(8), nullable=False)
    size: Mapped[str] = mapped_column(String(8), nullable=False)
    digest: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
