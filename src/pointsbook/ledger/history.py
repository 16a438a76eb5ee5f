"""Per-user transaction history and ledger summaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.db.models import Play, Transaction, User
from pointsbook.ledger.errors import InvalidInput, NotFound

MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class LedgerSummary:
    admin_credit: int
    net_points: int
    win: int
    loss: int


def to_utc(value: datetime | None) -> datetime | None:
    """Aware UTC instant; naive values are taken as UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_range(since: datetime | None, until: datetime | None) -> None:
    if since is not None and until is not None and since > until:
        msg = "Range start must not be after range end"
        raise InvalidInput(msg, since=since.isoformat(), until=until.isoformat())


def check_limit(limit: int) -> None:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        msg = f"Limit must be between 1 and {MAX_PAGE_SIZE}"
        raise InvalidInput(msg, limit=limit)


async def require_user(db: AsyncSession, user_key: str) -> User:
    user = await db.get(User, user_key)
    if user is None:
        msg = f"User {user_key} not found"
        raise NotFound(msg, user_key=user_key)
    return user


async def list_transactions(
    db: AsyncSession,
    user_key: str,
    *,
    kind: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 30,
) -> list[Transaction]:
    """A user's transactions, newest first."""
    since, until = to_utc(since), to_utc(until)
    check_limit(limit)
    check_range(since, until)
    await require_user(db, user_key)

    query = select(Transaction).where(Transaction.user_key == user_key)
    if kind is not None:
        query = query.where(Transaction.kind == kind)
    if since is not None:
        query = query.where(Transaction.created_at >= since)
    if until is not None:
        query = query.where(Transaction.created_at <= until)
    result = await db.execute(
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def summarize(
    db: AsyncSession,
    user_key: str,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> LedgerSummary:
    """Admin credit, net points and won/lost stakes within an optional range.

    Pending plays count toward neither win nor loss.
    """
    since, until = to_utc(since), to_utc(until)
    check_range(since, until)
    await require_user(db, user_key)

    txn_filters = [Transaction.user_key == user_key, Transaction.kind != "admin-wallet"]
    play_filters = [Play.user_key == user_key]
    if since is not None:
        txn_filters.append(Transaction.created_at >= since)
        play_filters.append(Play.created_at >= since)
    if until is not None:
        txn_filters.append(Transaction.created_at <= until)
        play_filters.append(Play.created_at <= until)

    admin_credit_expr = case(
        (
            (Transaction.type == "credit")
            & (Transaction.kind == "points")
            & Transaction.acting_admin_key.is_not(None),
            Transaction.amount,
        ),
        else_=0,
    )
    net_expr = case((Transaction.type == "credit", Transaction.amount), else_=-Transaction.amount)
    txn_row = (
        await db.execute(
            select(
                func.coalesce(func.sum(admin_credit_expr), 0),
                func.coalesce(func.sum(net_expr), 0),
            ).where(*txn_filters)
        )
    ).one()

    win_expr = case((Play.outcome == "win", Play.stake), else_=0)
    loss_expr = case((Play.outcome == "lose", Play.stake), else_=0)
    play_row = (
        await db.execute(
            select(
                func.coalesce(func.sum(win_expr), 0),
                func.coalesce(func.sum(loss_expr), 0),
            ).where(*play_filters)
        )
    ).one()

    return LedgerSummary(
        admin_credit=int(txn_row[0]),
        net_points=int(txn_row[1]),
        win=int(play_row[0]),
        loss=int(play_row[1]),
    )
