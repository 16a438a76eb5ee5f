"""Integration tests for undoing staff adjustments."""

import asyncio

import pytest

from pointsbook.ledger.allowance import adjust_allowance, adjust_balance_as_actor
from pointsbook.ledger.balance import adjust_balance
from pointsbook.ledger.errors import Forbidden, InsufficientAllowance, InsufficientBalance, NotFound
from pointsbook.ledger.roles import Actor, Role
from pointsbook.ledger.undo import undo_last_admin_transaction
from tests.conftest import read_transactions, read_user


class TestUndo:
    @pytest.mark.asyncio
    async def test_undo_credit_appends_linked_reversal(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN, admin_wallet=100)
        user = await make_user()
        original = await adjust_balance_as_actor(session_factory, Actor.of(admin), user.key, 30, "gift")

        change = await undo_last_admin_transaction(session_factory, Actor.of(admin))
        assert change.delta == -30
        assert change.new_balance == 0

        first, reversal = await read_transactions(session_factory, user.key)
        assert first.id == original.transaction_id
        assert first.type == "credit"
        assert reversal.type == "debit"
        assert reversal.reverses_id == first.id
        assert reversal.note == f"Undo of transaction #{first.id}"
        # Allowance spent on the original credit is not refunded
        assert (await read_user(session_factory, admin.key)).admin_used == 30

    @pytest.mark.asyncio
    async def test_undo_walks_back_through_history(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        user = await make_user()
        await adjust_balance_as_actor(session_factory, Actor.of(root), user.key, 10)
        await adjust_balance_as_actor(session_factory, Actor.of(root), user.key, 20)

        assert (await undo_last_admin_transaction(session_factory, Actor.of(root))).delta == -20
        assert (await undo_last_admin_transaction(session_factory, Actor.of(root))).delta == -10
        with pytest.raises(NotFound):
            await undo_last_admin_transaction(session_factory, Actor.of(root))
        assert (await read_user(session_factory, user.key)).points == 0

    @pytest.mark.asyncio
    async def test_undo_debit_is_a_gated_credit(self, session_factory, make_user):
        admin = await make_user(Role.ADMIN, admin_wallet=10)
        user = await make_user(points=50)
        await adjust_balance_as_actor(session_factory, Actor.of(admin), user.key, -15)

        with pytest.raises(InsufficientAllowance):
            await undo_last_admin_transaction(session_factory, Actor.of(admin))
        assert (await read_user(session_factory, user.key)).points == 35

    @pytest.mark.asyncio
    async def test_undo_cannot_overdraw(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        user = await make_user()
        await adjust_balance_as_actor(session_factory, Actor.of(root), user.key, 30)
        await adjust_balance(session_factory, user.key, -25, "spent")

        with pytest.raises(InsufficientBalance):
            await undo_last_admin_transaction(session_factory, Actor.of(root))
        assert (await read_user(session_factory, user.key)).points == 5

    @pytest.mark.asyncio
    async def test_allowance_changes_are_not_undoable(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        admin = await make_user(Role.ADMIN)
        await adjust_allowance(session_factory, Actor.of(root), admin.key, 100)
        with pytest.raises(NotFound):
            await undo_last_admin_transaction(session_factory, Actor.of(root))

    @pytest.mark.asyncio
    async def test_end_user_cannot_undo(self, session_factory, make_user):
        user = await make_user()
        with pytest.raises(Forbidden):
            await undo_last_admin_transaction(session_factory, Actor.of(user))

    @pytest.mark.asyncio
    async def test_concurrent_undo_reverses_once(self, session_factory, make_user):
        root = await make_user(Role.SUPERADMIN)
        user = await make_user()
        await adjust_balance_as_actor(session_factory, Actor.of(root), user.key, 40)

        results = await asyncio.gather(
            undo_last_admin_transaction(session_factory, Actor.of(root)),
            undo_last_admin_transaction(session_factory, Actor.of(root)),
            return_exceptions=True,
        )
        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, NotFound)) == 1
        assert (await read_user(session_factory, user.key)).points == 0
