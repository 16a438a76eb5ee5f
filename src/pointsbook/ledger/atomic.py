"""Bounded-retry wrapper around one database transaction.

Every invariant-bearing mutation (balance, allowance, round result creation)
goes through ``run_atomic``: the callback's reads and writes commit or roll
back together, and a lost race is retried from scratch in a fresh session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pointsbook.config import get_settings
from pointsbook.db.models import User
from pointsbook.ledger.errors import NotFound, StoreUnavailable, TransactionConflict

logger = structlog.get_logger()

T = TypeVar("T")

SessionFactory = async_sessionmaker[AsyncSession]

# serialization_failure, deadlock_detected, lock_not_available, unique_violation
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "23505"})
_SQLITE_CONFLICT_MESSAGES = ("database is locked", "unique constraint failed")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: DBAPIError) -> bool:
    """True if the failure means another transaction won a race."""
    if _sqlstate(exc) in _CONFLICT_SQLSTATES:
        return True
    text = str(exc.orig).lower()
    if any(marker in text for marker in _SQLITE_CONFLICT_MESSAGES):
        return True
    # Unique-key race without a driver sqlstate (e.g. wrapped asyncpg errors)
    return isinstance(exc, IntegrityError) and "unique" in text


async def run_atomic(
    session_factory: SessionFactory,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: int | None = None,
) -> T:
    """Run ``fn`` inside one transaction, retrying store conflicts.

    Domain errors raised by ``fn`` roll the unit back and propagate unchanged.
    Conflicts are retried up to ``max_attempts`` times with linear backoff and
    then surface as TransactionConflict. Connection failures surface as
    StoreUnavailable without retry.
    """
    settings = get_settings()
    attempts = max_attempts or settings.atomic_max_attempts
    backoff = settings.atomic_retry_backoff_ms / 1000

    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session, session.begin():
                return await fn(session)
        except DBAPIError as exc:
            if exc.connection_invalidated or isinstance(exc, InterfaceError):
                msg = "Ledger store is unavailable"
                raise StoreUnavailable(msg, error=str(exc.orig)) from exc
            if not is_conflict(exc):
                raise
            logger.info("atomic_conflict_retry", attempt=attempt, max_attempts=attempts, error=str(exc.orig))
            if attempt < attempts:
                await asyncio.sleep(backoff * attempt)
        except OSError as exc:
            msg = "Ledger store is unavailable"
            raise StoreUnavailable(msg, error=str(exc)) from exc

    logger.warning("atomic_conflict_exhausted", max_attempts=attempts)
    msg = f"Transaction kept conflicting after {attempts} attempts"
    raise TransactionConflict(msg, attempts=attempts)


async def lock_user(db: AsyncSession, key: str) -> User:
    """Read a user row for update inside the current unit. Raises NotFound."""
    result = await db.execute(select(User).where(User.key == key).with_for_update())
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {key} not found"
        raise NotFound(msg, user_key=key)
    return user
