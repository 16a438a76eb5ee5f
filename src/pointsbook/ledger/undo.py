"""Compensating undo of a staff member's most recent points adjustment."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from pointsbook.db.models import Transaction
from pointsbook.ledger.allowance import apply_delta_as_actor
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.balance import BalanceChange, publish_balance_change
from pointsbook.ledger.errors import NotFound
from pointsbook.ledger.roles import Actor, Role, require_manage, require_role

logger = structlog.get_logger()


async def find_undoable_transaction(db: AsyncSession, actor_key: str) -> Transaction | None:
    """Newest points adjustment by ``actor_key`` that is not a reversal and not yet reversed."""
    reversal = aliased(Transaction)
    already_reversed = select(reversal.id).where(reversal.reverses_id == Transaction.id).exists()
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.acting_admin_key == actor_key,
            Transaction.kind == "points",
            Transaction.reverses_id.is_(None),
            ~already_reversed,
        )
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def undo_last_admin_transaction(
    session_factory: SessionFactory,
    actor: Actor,
    *,
    redis: object | None = None,
) -> BalanceChange:
    """Reverse the actor's latest adjustment with an opposite, linked transaction.

    The original record is left untouched. Reversing a debit is a credit and
    goes through the allowance gate like any other admin credit.
    """
    require_role(actor, Role.SUPERADMIN, Role.ADMIN)

    async def _unit(db: AsyncSession) -> BalanceChange:
        # Serializes concurrent undos by the same actor
        await lock_user(db, actor.key)
        last = await find_undoable_transaction(db, actor.key)
        if last is None:
            msg = "No admin action to undo"
            raise NotFound(msg, actor_key=actor.key)

        target = await lock_user(db, last.user_key)
        require_manage(actor, target)
        delta = -last.signed_amount
        txn = await apply_delta_as_actor(
            db, actor, target, delta, f"Undo of transaction #{last.id}", reverses_id=last.id,
        )
        return BalanceChange(user_key=target.key, delta=delta, new_balance=txn.balance_after, transaction_id=txn.id)

    change = await run_atomic(session_factory, _unit)
    logger.info("admin_transaction_undone", actor_key=actor.key, user_key=change.user_key, delta=change.delta)
    await publish_balance_change(redis, change)
    return change
