"""Roles, the explicit actor session, and authorization rules.

Each rule covers all three roles; adding a role without extending every rule
fails loudly instead of silently granting access.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, NoReturn

from pointsbook.ledger.errors import Forbidden

if TYPE_CHECKING:
    from pointsbook.db.models import User


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation. Passed explicitly into every call."""

    key: str
    role: Role

    @classmethod
    def of(cls, user: User) -> Actor:
        return cls(key=user.key, role=Role(user.role))

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.SUPERADMIN, Role.ADMIN)


def _unhandled(role: Role) -> NoReturn:
    msg = f"Unhandled role: {role!r}"
    raise AssertionError(msg)


def can_manage(actor_role: Role, target_role: Role) -> bool:
    """Superadmins manage admins and users, admins manage users, users manage nobody."""
    if actor_role is Role.SUPERADMIN:
        return target_role in (Role.ADMIN, Role.USER)
    if actor_role is Role.ADMIN:
        return target_role is Role.USER
    if actor_role is Role.USER:
        return False
    _unhandled(actor_role)


def allowance_applies(actor_role: Role, target_role: Role, delta: int) -> bool:
    """Only an admin crediting an end user spends allowance."""
    if actor_role is Role.ADMIN:
        return target_role is Role.USER and delta > 0
    if actor_role is Role.SUPERADMIN:
        return False
    if actor_role is Role.USER:
        return False
    _unhandled(actor_role)


def require_manage(actor: Actor, target: User) -> None:
    """Raise Forbidden unless ``actor`` may administer ``target``."""
    target_role = Role(target.role)
    if not can_manage(actor.role, target_role):
        msg = f"{actor.role.value} {actor.key} cannot manage {target_role.value} {target.key}"
        raise Forbidden(msg, actor_key=actor.key, target_key=target.key)


def require_role(actor: Actor, *roles: Role) -> None:
    """Raise Forbidden unless the actor holds one of ``roles``."""
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        msg = f"Operation requires role: {allowed}"
        raise Forbidden(msg, actor_key=actor.key, role=actor.role.value)
