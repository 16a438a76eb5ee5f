"""Tests for role rules and the actor session object."""

import pytest

from pointsbook.db.models import User
from pointsbook.ledger.errors import Forbidden
from pointsbook.ledger.roles import Actor, Role, allowance_applies, can_manage, require_manage, require_role


def user(key: str, role: Role) -> User:
    return User(key=key, role=role.value, name=key, points=0, admin_wallet=0, admin_used=0)


class TestCanManage:
    @pytest.mark.parametrize(("actor", "target", "allowed"), [
        (Role.SUPERADMIN, Role.SUPERADMIN, False),
        (Role.SUPERADMIN, Role.ADMIN, True),
        (Role.SUPERADMIN, Role.USER, True),
        (Role.ADMIN, Role.SUPERADMIN, False),
        (Role.ADMIN, Role.ADMIN, False),
        (Role.ADMIN, Role.USER, True),
        (Role.USER, Role.SUPERADMIN, False),
        (Role.USER, Role.ADMIN, False),
        (Role.USER, Role.USER, False),
    ])
    def test_matrix(self, actor, target, allowed):
        assert can_manage(actor, target) is allowed

    def test_unknown_role_fails_loudly(self):
        with pytest.raises(AssertionError):
            can_manage("moderator", Role.USER)  # type: ignore[arg-type]


class TestAllowanceApplies:
    def test_admin_crediting_user(self):
        assert allowance_applies(Role.ADMIN, Role.USER, 10) is True

    def test_admin_debit_is_free(self):
        assert allowance_applies(Role.ADMIN, Role.USER, -10) is False

    def test_superadmin_is_unlimited(self):
        assert allowance_applies(Role.SUPERADMIN, Role.USER, 10) is False
        assert allowance_applies(Role.SUPERADMIN, Role.ADMIN, 10) is False

    def test_unknown_role_fails_loudly(self):
        with pytest.raises(AssertionError):
            allowance_applies("moderator", Role.USER, 10)  # type: ignore[arg-type]


class TestActor:
    def test_of_user(self):
        actor = Actor.of(user("A0001", Role.ADMIN))
        assert actor == Actor(key="A0001", role=Role.ADMIN)
        assert actor.is_staff

    def test_end_user_is_not_staff(self):
        assert not Actor("C1", Role.USER).is_staff

    def test_require_manage(self):
        require_manage(Actor("A1", Role.ADMIN), user("C1", Role.USER))
        with pytest.raises(Forbidden) as excinfo:
            require_manage(Actor("A1", Role.ADMIN), user("A2", Role.ADMIN))
        assert excinfo.value.context == {"actor_key": "A1", "target_key": "A2"}

    def test_require_role(self):
        require_role(Actor("S1", Role.SUPERADMIN), Role.SUPERADMIN)
        with pytest.raises(Forbidden):
            require_role(Actor("A1", Role.ADMIN), Role.SUPERADMIN)
