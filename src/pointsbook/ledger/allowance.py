"""Admin wallet gate: caps how many points an admin may grant to end users.

The gate wraps the balance mutator. When an admin credits a user, the
admin's ``admin_used`` is charged in the same unit of work as the target's
balance write and transaction append. Debits and superadmin actions pass
straight through.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.db.models import Transaction, User
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.balance import (
    MAX_POINTS,
    BalanceChange,
    apply_delta,
    publish_balance_change,
    validate_delta,
)
from pointsbook.ledger.errors import Forbidden, InsufficientAllowance, InvalidInput
from pointsbook.ledger.roles import Actor, Role, allowance_applies, require_manage, require_role

logger = structlog.get_logger()

ApplyDelta = Callable[..., Awaitable[Transaction]]


async def consume_allowance(db: AsyncSession, actor: Actor, target: User, delta: int) -> User | None:
    """Charge the acting admin's allowance for a gated credit.

    Returns the locked admin row when the gate applied, None when it was bypassed.
    """
    if not allowance_applies(actor.role, Role(target.role), delta):
        return None

    admin = await lock_user(db, actor.key)
    if Role(admin.role) is not Role.ADMIN:
        msg = f"Acting user {actor.key} is no longer an admin"
        raise Forbidden(msg, actor_key=actor.key)

    remaining = admin.admin_wallet - admin.admin_used
    if delta > remaining:
        msg = f"Insufficient admin allowance: {remaining} remaining, {delta} requested"
        raise InsufficientAllowance(
            msg,
            admin_key=admin.key,
            remaining=remaining,
            requested=delta,
            admin_wallet=admin.admin_wallet,
            admin_used=admin.admin_used,
        )
    admin.admin_used += delta
    admin.updated_at = datetime.now(timezone.utc)
    return admin


def allowance_gate(apply: ApplyDelta) -> Callable[..., Awaitable[Transaction]]:
    """Wrap a delta applier so admin credits are charged against allowance first."""

    async def gated(
        db: AsyncSession,
        actor: Actor,
        target: User,
        delta: int,
        note: str = "",
        **kwargs: Any,  # noqa: ANN401
    ) -> Transaction:
        await consume_allowance(db, actor, target, delta)
        return await apply(db, target.key, delta, note, acting_admin_key=actor.key, user=target, **kwargs)

    return gated


apply_delta_as_actor = allowance_gate(apply_delta)


async def adjust_balance_as_actor(
    session_factory: SessionFactory,
    actor: Actor,
    user_key: str,
    delta: int,
    note: str = "",
    *,
    redis: object | None = None,
) -> BalanceChange:
    """Adjust a user's points on behalf of a staff actor.

    Raises:
        Forbidden: the actor may not manage the target.
        InsufficientAllowance: an admin credit exceeds the remaining allowance.
        InsufficientBalance: a debit exceeds the target's balance.
    """
    delta = validate_delta(delta)

    async def _unit(db: AsyncSession) -> BalanceChange:
        target = await lock_user(db, user_key)
        require_manage(actor, target)
        txn = await apply_delta_as_actor(db, actor, target, delta, note)
        return BalanceChange(user_key=user_key, delta=delta, new_balance=txn.balance_after, transaction_id=txn.id)

    change = await run_atomic(session_factory, _unit)
    logger.info(
        "balance_adjusted",
        user_key=user_key,
        delta=delta,
        new_balance=change.new_balance,
        acting_admin_key=actor.key,
    )
    await publish_balance_change(redis, change)
    return change


async def adjust_allowance(
    session_factory: SessionFactory,
    actor: Actor,
    admin_key: str,
    delta: int,
    note: str = "",
) -> User:
    """Top up (or lower) an admin's allowance. Superadmin only.

    The allowance can never drop below what the admin has already used.
    """
    require_role(actor, Role.SUPERADMIN)
    delta = validate_delta(delta)

    async def _unit(db: AsyncSession) -> User:
        admin = await lock_user(db, admin_key)
        if Role(admin.role) is not Role.ADMIN:
            msg = f"User {admin_key} is not an admin"
            raise Forbidden(msg, target_key=admin_key, role=admin.role)

        next_wallet = admin.admin_wallet + delta
        if next_wallet < admin.admin_used:
            msg = f"Allowance cannot drop below used amount: {admin.admin_used} used, {next_wallet} requested"
            raise InsufficientAllowance(
                msg,
                admin_key=admin_key,
                remaining=admin.admin_remaining,
                requested=-delta,
                admin_wallet=admin.admin_wallet,
                admin_used=admin.admin_used,
            )
        if next_wallet > MAX_POINTS:
            msg = f"Allowance would exceed {MAX_POINTS}"
            raise InvalidInput(msg, admin_key=admin_key, admin_wallet=admin.admin_wallet, delta=delta)

        now = datetime.now(timezone.utc)
        admin.admin_wallet = next_wallet
        admin.updated_at = now
        db.add(Transaction(
            user_key=admin_key,
            type="credit" if delta >= 0 else "debit",
            amount=abs(delta),
            note=note or "",
            acting_admin_key=actor.key,
            kind="admin-wallet",
            balance_after=next_wallet,
            created_at=now,
        ))
        await db.flush()
        return admin

    admin = await run_atomic(session_factory, _unit)
    logger.info(
        "allowance_adjusted",
        admin_key=admin_key,
        delta=delta,
        admin_wallet=admin.admin_wallet,
        admin_used=admin.admin_used,
    )
    return admin
