"""Balance mutator: signed point deltas with a paired transaction record.

``apply_delta`` performs the locked read, the non-negative check, the balance
write and the transaction append against an already-open unit of work, so
other operations (plays, settlement, undo) can compose it with their own
writes. ``adjust_balance`` is the standalone entry point that wraps it in
``run_atomic``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.db.models import Transaction, User
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.errors import InsufficientBalance, InvalidInput
from pointsbook.pubsub import BALANCE_CHANNEL, publish_event

logger = structlog.get_logger()

TRANSACTION_KINDS = frozenset({"points", "admin-wallet", "game"})

# Balances, allowances and amounts are stored as BIGINT
MAX_POINTS = 2**63 - 1


@dataclass(frozen=True)
class BalanceChange:
    """Outcome of one committed balance mutation."""

    user_key: str
    delta: int
    new_balance: int
    transaction_id: int


def validate_delta(delta: object) -> int:
    """Return ``delta`` as a non-zero int or raise InvalidInput."""
    if isinstance(delta, bool):
        msg = "Delta must be an integer"
        raise InvalidInput(msg, delta=delta)
    if isinstance(delta, float):
        if not math.isfinite(delta) or not delta.is_integer():
            msg = "Delta must be a finite whole number"
            raise InvalidInput(msg, delta=delta)
        delta = int(delta)
    if not isinstance(delta, int):
        msg = "Delta must be an integer"
        raise InvalidInput(msg, delta=repr(delta))
    if delta == 0:
        msg = "Delta must be non-zero"
        raise InvalidInput(msg, delta=delta)
    if abs(delta) > MAX_POINTS:
        msg = f"Delta must not exceed {MAX_POINTS} in magnitude"
        raise InvalidInput(msg, delta=str(delta), max=MAX_POINTS)
    return delta


async def apply_delta(
    db: AsyncSession,
    user_key: str,
    delta: int,
    note: str = "",
    *,
    acting_admin_key: str | None = None,
    kind: str = "points",
    play_id: int | None = None,
    reverses_id: int | None = None,
    user: User | None = None,
) -> Transaction:
    """Apply ``delta`` to a user's points and append its transaction.

    Must run inside an atomic unit. Pass ``user`` when the caller already
    holds the locked row.

    Raises:
        NotFound: user does not exist.
        InsufficientBalance: the balance would go negative.
        InvalidInput: the balance would exceed MAX_POINTS.
    """
    if kind not in TRANSACTION_KINDS:
        msg = f"Unknown transaction kind: {kind}"
        raise InvalidInput(msg, kind=kind)
    if user is None:
        user = await lock_user(db, user_key)

    current = user.points
    next_points = current + delta
    if next_points < 0:
        msg = f"Insufficient balance: {current} available, {-delta} requested"
        raise InsufficientBalance(msg, user_key=user.key, balance=current, requested=-delta)
    if next_points > MAX_POINTS:
        msg = f"Balance would exceed {MAX_POINTS}"
        raise InvalidInput(msg, user_key=user.key, balance=current, delta=delta, max=MAX_POINTS)

    now = datetime.now(timezone.utc)
    user.points = next_points
    user.updated_at = now

    txn = Transaction(
        user_key=user.key,
        type="credit" if delta >= 0 else "debit",
        amount=abs(delta),
        note=note or "",
        acting_admin_key=acting_admin_key,
        kind=kind,
        balance_after=next_points,
        play_id=play_id,
        reverses_id=reverses_id,
        created_at=now,
    )
    db.add(txn)
    await db.flush()  # Assign txn.id
    return txn


async def adjust_balance(
    session_factory: SessionFactory,
    user_key: str,
    delta: int,
    note: str = "",
    acting_admin_key: str | None = None,
    *,
    redis: object | None = None,
) -> BalanceChange:
    """Atomically apply ``delta`` to ``user_key`` and log it.

    Exactly one balance write and one transaction append are committed, or
    nothing is.
    """
    delta = validate_delta(delta)

    async def _unit(db: AsyncSession) -> BalanceChange:
        txn = await apply_delta(db, user_key, delta, note, acting_admin_key=acting_admin_key)
        return BalanceChange(user_key=user_key, delta=delta, new_balance=txn.balance_after, transaction_id=txn.id)

    change = await run_atomic(session_factory, _unit)
    logger.info(
        "balance_adjusted",
        user_key=user_key,
        delta=delta,
        new_balance=change.new_balance,
        acting_admin_key=acting_admin_key,
    )
    await publish_balance_change(redis, change)
    return change


async def publish_balance_change(redis: object | None, change: BalanceChange) -> None:
    await publish_event(redis, BALANCE_CHANNEL, {
        "user_key": change.user_key,
        "delta": change.delta,
        "new_balance": change.new_balance,
        "transaction_id": change.transaction_id,
    })
