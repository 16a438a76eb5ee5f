"""Credential checks for login."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.auth.password import check_needs_rehash, hash_password, verify_password
from pointsbook.db.models import User
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.errors import AuthenticationError, Forbidden

logger = structlog.get_logger()


async def get_user_by_login(db: AsyncSession, login: str) -> User | None:
    """Find a user by key, falling back to phone number.

    A key match always wins, so a key that happens to equal another
    account's phone still logs in its own account.
    """
    value = login.strip()
    if not value:
        return None
    user = await db.get(User, value)
    if user is not None:
        return user
    result = await db.execute(select(User).where(User.phone == value))
    return result.scalar_one_or_none()


async def authenticate(session_factory: SessionFactory, login: str, password: str) -> User:
    """
    Authenticate with key-or-phone plus password.

    Raises:
        AuthenticationError: unknown login or wrong password.
        Forbidden: the account is blocked.
    """
    async with session_factory() as db:
        user = await get_user_by_login(db, login)

    if user is None or not verify_password(password.strip(), user.password_hash):
        logger.info("login_failed", login=login)
        msg = "Invalid key or password"
        raise AuthenticationError(msg)

    if user.is_blocked:
        msg = "Account blocked"
        raise Forbidden(msg, user_key=user.key)

    if user.password_hash and check_needs_rehash(user.password_hash):
        new_hash = hash_password(password.strip())

        async def _rehash(db: AsyncSession) -> None:
            locked = await lock_user(db, user.key)
            locked.password_hash = new_hash

        await run_atomic(session_factory, _rehash)

    logger.info("login_succeeded", user_key=user.key, role=user.role)
    return user
