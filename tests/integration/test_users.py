"""Integration tests for account provisioning and administration."""

import pytest

from pointsbook.auth.password import verify_password
from pointsbook.auth.service import authenticate
from pointsbook.ledger.balance import adjust_balance
from pointsbook.ledger.errors import AuthenticationError, Forbidden, InvalidInput, NotFound
from pointsbook.ledger.history import list_transactions
from pointsbook.ledger.roles import Actor, Role
from pointsbook.rounds.plays import list_plays, place_play
from pointsbook.users.service import (
    clear_history,
    create_user,
    delete_user,
    ensure_superadmin,
    list_users,
    reset_password,
    set_blocked,
    update_profile,
)
from tests.conftest import TEST_PASSWORD, read_transactions, read_user


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_self_registration_creates_end_user(self, session_factory):
        user = await create_user(session_factory, name="Asha", password="1234", phone="9876543210")
        assert user.role == "user"
        assert user.points == 0
        assert user.key.startswith("C") and len(user.key) == 6
        assert user.password_hash != "1234"
        assert verify_password("1234", user.password_hash)

    @pytest.mark.asyncio
    async def test_self_registration_cannot_create_admin(self, session_factory):
        with pytest.raises(Forbidden):
            await create_user(session_factory, name="Sneaky", password="1234", role=Role.ADMIN)

    @pytest.mark.asyncio
    async def test_admin_creates_users_only(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await create_user(session_factory, name="Ravi", password="1234", actor=Actor.of(admin))
        assert user.created_by == admin.key
        with pytest.raises(Forbidden):
            await create_user(session_factory, name="Boss", password="1234", role=Role.ADMIN, actor=Actor.of(admin))

    @pytest.mark.asyncio
    async def test_superadmin_creates_admin_with_chosen_key(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        admin = await create_user(
            session_factory, name="Desk", password="1234", role=Role.ADMIN, key="DESK1", actor=Actor.of(root),
        )
        assert (admin.key, admin.role, admin.admin_wallet) == ("DESK1", "admin", 0)

    @pytest.mark.asyncio
    async def test_duplicate_phone_rejected(self, session_factory):
        await create_user(session_factory, name="One", password="1234", phone="9000000001")
        with pytest.raises(InvalidInput):
            await create_user(session_factory, name="Two", password="1234", phone="9000000001")

    @pytest.mark.asyncio
    async def test_duplicate_key_rejected(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        await make_user(key="C00001")
        with pytest.raises(InvalidInput):
            await create_user(session_factory, name="Dup", password="1234", key="C00001", actor=Actor.of(root))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("name", "password", "phone"), [
        ("", "1234", None),
        ("Name", "12", None),
        ("Name", "1234", "not-a-phone"),
    ])
    async def test_invalid_fields(self, session_factory, name, password, phone):
        with pytest.raises(InvalidInput):
            await create_user(session_factory, name=name, password=password, phone=phone)

    @pytest.mark.asyncio
    async def test_ensure_superadmin_is_idempotent(self, session_factory):
        assert await ensure_superadmin(session_factory, "ROOT", "rootpass") is True
        assert await ensure_superadmin(session_factory, "ROOT", "rootpass") is False
        assert (await read_user(session_factory, "ROOT")).role == "superadmin"


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_login_by_key_or_phone(self, session_factory, make_user):
        user = await make_user(phone="9111111111")
        assert (await authenticate(session_factory, user.key, TEST_PASSWORD)).key == user.key
        assert (await authenticate(session_factory, "9111111111", TEST_PASSWORD)).key == user.key

    @pytest.mark.asyncio
    async def test_key_match_wins_over_phone(self, session_factory, make_user):
        by_phone = await make_user(phone="9222222222")
        by_key = await create_user(session_factory, name="Digits", password="other-pass", key="9222222222")

        assert (await authenticate(session_factory, "9222222222", "other-pass")).key == by_key.key
        with pytest.raises(AuthenticationError):
            await authenticate(session_factory, "9222222222", TEST_PASSWORD)
        assert (await authenticate(session_factory, by_phone.key, TEST_PASSWORD)).key == by_phone.key

    @pytest.mark.asyncio
    async def test_wrong_password(self, session_factory, make_user):
        user = await make_user()
        with pytest.raises(AuthenticationError):
            await authenticate(session_factory, user.key, "wrong")

    @pytest.mark.asyncio
    async def test_unknown_login(self, session_factory):
        with pytest.raises(AuthenticationError):
            await authenticate(session_factory, "NOBODY", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_blocked_user_cannot_login(self, session_factory, make_user):
        user = await make_user(blocked=True)
        with pytest.raises(Forbidden):
            await authenticate(session_factory, user.key, TEST_PASSWORD)


class TestAdministration:
    @pytest.mark.asyncio
    async def test_list_users_scoped_by_role(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        admin = await make_user(Role.ADMIN)
        user = await make_user()
        async with session_factory() as db:
            seen_by_root = {u.key for u in await list_users(db, Actor.of(root))}
            seen_by_admin = {u.key for u in await list_users(db, Actor.of(admin))}
            with pytest.raises(Forbidden):
                await list_users(db, Actor.of(user))
        assert seen_by_root == {admin.key, user.key}
        assert seen_by_admin == {user.key}

    @pytest.mark.asyncio
    async def test_update_own_profile(self, session_factory, make_user):
        user = await make_user()
        updated = await update_profile(session_factory, Actor.of(user), name="New Name", password="newpass")
        assert updated.name == "New Name"
        assert verify_password("newpass", updated.password_hash)
        with pytest.raises(InvalidInput):
            await update_profile(session_factory, Actor.of(user))

    @pytest.mark.asyncio
    async def test_reset_password(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await make_user()
        await reset_password(session_factory, Actor.of(admin), user.key, "fresh1")
        assert (await authenticate(session_factory, user.key, "fresh1")).key == user.key

    @pytest.mark.asyncio
    async def test_block_and_unblock(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await make_user()
        assert (await set_blocked(session_factory, Actor.of(admin), user.key, True)).is_blocked
        assert not (await set_blocked(session_factory, Actor.of(admin), user.key, False)).is_blocked

    @pytest.mark.asyncio
    async def test_admin_cannot_block_admin(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        other = await make_user(Role.ADMIN)
        with pytest.raises(Forbidden):
            await set_blocked(session_factory, Actor.of(admin), other.key, True)


class TestDeleteAndClear:
    @pytest.mark.asyncio
    async def test_delete_cascades_history(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await make_user(points=100)
        await adjust_balance(session_factory, user.key, -10)
        await place_play(session_factory, Actor.of(user), "red", 10)

        await delete_user(session_factory, Actor.of(admin), user.key)
        assert await read_user(session_factory, user.key) is None
        assert await read_transactions(session_factory, user.key) == []
        async with session_factory() as db:
            with pytest.raises(NotFound):
                await list_plays(db, user.key)

    @pytest.mark.asyncio
    async def test_cannot_delete_self_or_superadmin(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        admin = await make_user(Role.ADMIN)
        with pytest.raises(Forbidden):
            await delete_user(session_factory, Actor.of(root), root.key)
        with pytest.raises(Forbidden):
            await delete_user(session_factory, Actor.of(admin), root.key)

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        with pytest.raises(NotFound):
            await delete_user(session_factory, Actor.of(admin), "GHOST")

    @pytest.mark.asyncio
    async def test_clear_history_keeps_balance(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await make_user(points=100)
        await place_play(session_factory, Actor.of(user), "red", 10)

        points = await clear_history(session_factory, Actor.of(admin), user.key)
        assert points == 90
        assert await read_transactions(session_factory, user.key) == []
        async with session_factory() as db:
            assert await list_plays(db, user.key) == []

    @pytest.mark.asyncio
    async def test_clear_history_with_wallet_reset(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN)
        user = await make_user(points=70)
        await adjust_balance(session_factory, user.key, 5)

        points = await clear_history(session_factory, Actor.of(admin), user.key, reset_wallet=True)
        assert points == 0
        assert (await read_user(session_factory, user.key)).points == 0
        async with session_factory() as db:
            [txn] = await list_transactions(db, user.key)
        assert (txn.type, txn.amount, txn.balance_after, txn.acting_admin_key) == ("debit", 75, 0, admin.key)
