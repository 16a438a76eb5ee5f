"""User provisioning and administration."""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.auth.password import hash_password, validate_password
from pointsbook.db.models import Play, Transaction, User
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.balance import apply_delta
from pointsbook.ledger.errors import Forbidden, InvalidInput
from pointsbook.ledger.history import check_limit
from pointsbook.ledger.roles import Actor, Role, can_manage, require_manage

logger = structlog.get_logger()

_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,32}$")
_PHONE_RE = re.compile(r"^\+?[0-9]{6,15}$")
_KEY_GENERATION_ATTEMPTS = 10


def _clean_name(name: str | None) -> str:
    value = (name or "").strip()
    if not value:
        msg = "Name is required"
        raise InvalidInput(msg)
    if len(value) > 128:
        msg = "Name must not exceed 128 characters"
        raise InvalidInput(msg)
    return value


def _clean_phone(phone: str | None) -> str | None:
    value = (phone or "").strip().replace(" ", "")
    if not value:
        return None
    if not _PHONE_RE.match(value):
        msg = f"Invalid phone number: {phone!r}"
        raise InvalidInput(msg, phone=phone)
    return value


def _clean_key(key: str | None) -> str | None:
    if key is None:
        return None
    value = key.strip()
    if not _KEY_RE.match(value):
        msg = "Key must be 1-32 letters, digits, '-' or '_'"
        raise InvalidInput(msg, key=key)
    return value


def generate_user_key() -> str:
    """Client key of the form C12345."""
    return f"C{10000 + secrets.randbelow(90000)}"


async def _pick_key(db: AsyncSession, requested: str | None) -> str:
    if requested is not None:
        if await db.get(User, requested) is not None:
            msg = f"Key {requested} already exists"
            raise InvalidInput(msg, key=requested)
        return requested
    for _ in range(_KEY_GENERATION_ATTEMPTS):
        candidate = generate_user_key()
        if await db.get(User, candidate) is None:
            return candidate
    msg = "Could not allocate a free user key"
    raise InvalidInput(msg)


async def create_user(
    session_factory: SessionFactory,
    *,
    name: str,
    password: str | None,
    phone: str | None = None,
    role: Role = Role.USER,
    key: str | None = None,
    external_subject: str | None = None,
    actor: Actor | None = None,
) -> User:
    """
    Register (no actor) or provision (staff actor) an account.

    Self-registration always creates an end user. Admins provision end users;
    superadmins provision admins and end users.

    Raises:
        InvalidInput: missing fields, weak password, duplicate key or phone.
        Forbidden: the actor may not create accounts of ``role``.
    """
    if actor is None:
        if role is not Role.USER:
            msg = "Self-registration can only create user accounts"
            raise Forbidden(msg, role=role.value)
    elif not can_manage(actor.role, role):
        msg = f"{actor.role.value} cannot create {role.value} accounts"
        raise Forbidden(msg, actor_key=actor.key, role=role.value)

    clean_name = _clean_name(name)
    clean_phone = _clean_phone(phone)
    requested_key = _clean_key(key)
    if password is None and external_subject is None:
        msg = "Password is required"
        raise InvalidInput(msg)
    password_hash = hash_password(validate_password(password)) if password is not None else None

    async def _unit(db: AsyncSession) -> User:
        if clean_phone is not None:
            taken = await db.execute(select(User.key).where(User.phone == clean_phone))
            if taken.scalar_one_or_none() is not None:
                msg = "Phone already exists"
                raise InvalidInput(msg, phone=clean_phone)
        if external_subject is not None:
            taken = await db.execute(select(User.key).where(User.external_subject == external_subject))
            if taken.scalar_one_or_none() is not None:
                msg = "Identity already linked to another account"
                raise InvalidInput(msg)

        now = datetime.now(timezone.utc)
        user = User(
            key=await _pick_key(db, requested_key),
            role=role.value,
            name=clean_name,
            phone=clean_phone,
            external_subject=external_subject,
            points=0,
            admin_wallet=0,
            admin_used=0,
            password_hash=password_hash,
            is_blocked=False,
            created_by=actor.key if actor else None,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        await db.flush()
        return user

    user = await run_atomic(session_factory, _unit)
    logger.info("user_created", user_key=user.key, role=user.role, created_by=user.created_by)
    return user


async def ensure_superadmin(session_factory: SessionFactory, key: str, password: str) -> bool:
    """Create the bootstrap superadmin if it does not exist. Returns True if created."""
    async with session_factory() as db:
        existing = await db.get(User, key)
    if existing is not None:
        return False

    password_hash = hash_password(validate_password(password))

    async def _unit(db: AsyncSession) -> bool:
        if await db.get(User, key) is not None:
            return False
        now = datetime.now(timezone.utc)
        db.add(User(
            key=key,
            role=Role.SUPERADMIN.value,
            name="Super Admin",
            points=0,
            admin_wallet=0,
            admin_used=0,
            password_hash=password_hash,
            is_blocked=False,
            created_at=now,
            updated_at=now,
        ))
        await db.flush()
        return True

    created = await run_atomic(session_factory, _unit)
    if created:
        logger.info("superadmin_bootstrapped", user_key=key)
    return created


async def list_users(db: AsyncSession, actor: Actor, limit: int = 200) -> list[User]:
    """Accounts visible to ``actor``, newest first."""
    check_limit(limit)
    query = select(User)
    if actor.role is Role.SUPERADMIN:
        query = query.where(User.role != Role.SUPERADMIN.value)
    elif actor.role is Role.ADMIN:
        query = query.where(User.role == Role.USER.value)
    else:
        msg = "Only staff can list accounts"
        raise Forbidden(msg, actor_key=actor.key)
    result = await db.execute(query.order_by(User.created_at.desc(), User.key).limit(limit))
    return list(result.scalars().all())


async def update_profile(
    session_factory: SessionFactory,
    actor: Actor,
    name: str | None = None,
    password: str | None = None,
) -> User:
    """Change the actor's own display name and/or password."""
    new_name = _clean_name(name) if name is not None and name.strip() else None
    new_hash = hash_password(validate_password(password)) if password else None
    if new_name is None and new_hash is None:
        msg = "Nothing to update"
        raise InvalidInput(msg)

    async def _unit(db: AsyncSession) -> User:
        user = await lock_user(db, actor.key)
        if new_name is not None:
            user.name = new_name
        if new_hash is not None:
            user.password_hash = new_hash
        user.updated_at = datetime.now(timezone.utc)
        return user

    user = await run_atomic(session_factory, _unit)
    logger.info("profile_updated", user_key=user.key, password_changed=new_hash is not None)
    return user


async def reset_password(
    session_factory: SessionFactory,
    actor: Actor,
    target_key: str,
    password: str,
) -> User:
    """Set a new password for an account the actor manages."""
    new_hash = hash_password(validate_password(password))

    async def _unit(db: AsyncSession) -> User:
        target = await lock_user(db, target_key)
        require_manage(actor, target)
        target.password_hash = new_hash
        target.updated_at = datetime.now(timezone.utc)
        return target

    user = await run_atomic(session_factory, _unit)
    logger.info("password_reset", user_key=target_key, actor_key=actor.key)
    return user


async def set_blocked(
    session_factory: SessionFactory,
    actor: Actor,
    target_key: str,
    blocked: bool,
) -> User:
    """Block or unblock an account. Blocked accounts cannot log in or play."""

    async def _unit(db: AsyncSession) -> User:
        target = await lock_user(db, target_key)
        require_manage(actor, target)
        target.is_blocked = blocked
        target.updated_at = datetime.now(timezone.utc)
        return target

    user = await run_atomic(session_factory, _unit)
    logger.info("user_block_changed", user_key=target_key, blocked=blocked, actor_key=actor.key)
    return user


async def _purge_history(db: AsyncSession, user_key: str) -> None:
    await db.execute(delete(Transaction).where(Transaction.user_key == user_key))
    await db.execute(delete(Play).where(Play.user_key == user_key))


async def delete_user(session_factory: SessionFactory, actor: Actor, target_key: str) -> None:
    """Delete an account together with its transactions and plays."""

    async def _unit(db: AsyncSession) -> None:
        target = await lock_user(db, target_key)
        if target.key == actor.key:
            msg = "Cannot delete your own account"
            raise Forbidden(msg, actor_key=actor.key)
        require_manage(actor, target)
        await _purge_history(db, target.key)
        await db.delete(target)
        await db.flush()

    await run_atomic(session_factory, _unit)
    logger.info("user_deleted", user_key=target_key, actor_key=actor.key)


async def clear_history(
    session_factory: SessionFactory,
    actor: Actor,
    target_key: str,
    reset_wallet: bool = False,
) -> int:
    """
    Delete an account's transactions and plays. Returns the resulting balance.

    With ``reset_wallet`` the remaining balance is debited to zero through the
    balance mutator, so the cleared history starts with that one entry.
    """

    async def _unit(db: AsyncSession) -> int:
        target = await lock_user(db, target_key)
        require_manage(actor, target)
        await _purge_history(db, target.key)
        if reset_wallet and target.points > 0:
            txn = await apply_delta(
                db, target.key, -target.points, "Wallet reset", acting_admin_key=actor.key, user=target,
            )
            return txn.balance_after
        return target.points

    points = await run_atomic(session_factory, _unit)
    logger.info("history_cleared", user_key=target_key, reset_wallet=reset_wallet, actor_key=actor.key)
    return points
