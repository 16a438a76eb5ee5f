"""Round participation: placing stakes and settling them against round results.

Placing a play debits the stake and records the play in one unit of work.
Settling a play decides its outcome from the round result and credits any
payout in one unit of work. Both go through the balance mutator so every
point movement has its transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.db.models import Play, RoundResult
from pointsbook.ledger.atomic import SessionFactory, lock_user, run_atomic
from pointsbook.ledger.balance import BalanceChange, apply_delta, publish_balance_change, validate_delta
from pointsbook.ledger.errors import Forbidden, InvalidInput, NotFound
from pointsbook.ledger.history import check_limit, require_user
from pointsbook.ledger.roles import Actor, Role, require_role
from pointsbook.rounds.clock import PeriodClock, get_clock
from pointsbook.rounds.oracle import ensure_result

logger = structlog.get_logger()

DIGIT_SELECTIONS = frozenset(str(d) for d in range(10))
COLOR_SELECTIONS = frozenset({"red", "green", "violet"})
SIZE_SELECTIONS = frozenset({"big", "small"})

# Multiple of the stake credited back on settlement
PAYOUT_MULTIPLIER = {"win": 2, "tie": 1, "lose": 0}


def normalize_selection(selection: str) -> str:
    """Lower-cased selection, or InvalidInput if it is not a digit, color or size."""
    value = (selection or "").strip().lower()
    if value in DIGIT_SELECTIONS or value in COLOR_SELECTIONS or value in SIZE_SELECTIONS:
        return value
    msg = f"Unknown selection: {selection!r}"
    raise InvalidInput(msg, selection=selection)


def decide_outcome(selection: str, result: RoundResult) -> str:
    """win / lose / tie for one selection against a round result.

    A red or green pick ties when the result is violet (0 or 5): the stake
    comes back but nothing is won.
    """
    if selection in DIGIT_SELECTIONS:
        return "win" if int(selection) == result.number else "lose"
    if selection in SIZE_SELECTIONS:
        return "win" if selection == result.size else "lose"
    if selection in COLOR_SELECTIONS:
        if selection == result.color:
            return "win"
        if result.color == "violet":
            return "tie"
        return "lose"
    msg = f"Unknown selection: {selection!r}"
    raise InvalidInput(msg, selection=selection)


@dataclass
class SettlementReport:
    rounds: list[str] = field(default_factory=list)
    settled_plays: int = 0


async def place_play(
    session_factory: SessionFactory,
    actor: Actor,
    selection: str,
    stake: int,
    *,
    now: datetime | None = None,
    clock: PeriodClock | None = None,
    redis: object | None = None,
) -> Play:
    """Stake points on the current round.

    Raises:
        Forbidden: actor is not an end user, or is blocked.
        InvalidInput: bad selection or non-positive stake.
        InsufficientBalance: stake exceeds the balance.
    """
    require_role(actor, Role.USER)
    choice = normalize_selection(selection)
    stake = validate_delta(stake)
    if stake < 0:
        msg = "Stake must be positive"
        raise InvalidInput(msg, stake=stake)

    clock = clock or get_clock()

    async def _unit(db: AsyncSession) -> tuple[Play, BalanceChange]:
        user = await lock_user(db, actor.key)
        # Per attempt, so a retried unit never stakes on a round that has closed
        round_id = clock.current_round_id(now)
        if user.is_blocked:
            msg = "Account blocked"
            raise Forbidden(msg, user_key=user.key)

        play = Play(
            user_key=user.key,
            round_id=round_id,
            selection=choice,
            stake=stake,
            outcome="pending",
            payout=0,
            created_at=datetime.now(timezone.utc),
        )
        db.add(play)
        await db.flush()  # Assign play.id

        txn = await apply_delta(
            db, user.key, -stake, f"Bet entry {round_id} {choice}",
            kind="game", play_id=play.id, user=user,
        )
        change = BalanceChange(user_key=user.key, delta=-stake, new_balance=txn.balance_after, transaction_id=txn.id)
        return play, change

    play, change = await run_atomic(session_factory, _unit)
    logger.info("play_placed", user_key=actor.key, round_id=play.round_id, selection=choice, stake=stake)
    await publish_balance_change(redis, change)
    return play


async def _settle_with_result(
    session_factory: SessionFactory,
    play_id: int,
    result: RoundResult,
    redis: object | None,
) -> tuple[Play, bool]:
    """Settle one play against a known result. Returns (play, settled_now)."""

    async def _unit(db: AsyncSession) -> tuple[Play, BalanceChange | None, bool]:
        locked = await db.execute(select(Play).where(Play.id == play_id).with_for_update())
        play = locked.scalar_one_or_none()
        if play is None:
            msg = f"Play {play_id} not found"
            raise NotFound(msg, play_id=play_id)
        if play.outcome != "pending":
            return play, None, False

        outcome = decide_outcome(play.selection, result)
        payout = play.stake * PAYOUT_MULTIPLIER[outcome]
        play.outcome = outcome
        play.payout = payout
        play.settled_at = datetime.now(timezone.utc)

        change = None
        if payout > 0:
            note = (
                f"Win reward (2x) {play.round_id} {play.selection}"
                if outcome == "win"
                else f"Stake returned {play.round_id} {play.selection}"
            )
            txn = await apply_delta(db, play.user_key, payout, note, kind="game", play_id=play.id)
            change = BalanceChange(
                user_key=play.user_key, delta=payout, new_balance=txn.balance_after, transaction_id=txn.id,
            )
        await db.flush()
        return play, change, True

    play, change, settled_now = await run_atomic(session_factory, _unit)
    if change is not None:
        await publish_balance_change(redis, change)
    return play, settled_now


async def settle_play(
    session_factory: SessionFactory,
    play_id: int,
    *,
    now: datetime | None = None,
    clock: PeriodClock | None = None,
    redis: object | None = None,
) -> Play:
    """Settle a single play, materializing its round result if needed. No-op if already settled."""
    async with session_factory() as db:
        play = await db.get(Play, play_id)
    if play is None:
        msg = f"Play {play_id} not found"
        raise NotFound(msg, play_id=play_id)
    if play.outcome != "pending":
        return play

    result = await ensure_result(session_factory, play.round_id, now=now, clock=clock, redis=redis)
    settled, _ = await _settle_with_result(session_factory, play_id, result, redis)
    logger.info("play_settled", play_id=play_id, round_id=settled.round_id, outcome=settled.outcome)
    return settled


async def _pending_play_ids(session_factory: SessionFactory, round_id: str) -> list[int]:
    async with session_factory() as db:
        rows = await db.execute(
            select(Play.id).where(Play.round_id == round_id, Play.outcome == "pending").order_by(Play.id)
        )
        return list(rows.scalars().all())


async def settle_round(
    session_factory: SessionFactory,
    round_id: str,
    *,
    now: datetime | None = None,
    clock: PeriodClock | None = None,
    redis: object | None = None,
) -> int:
    """Settle every pending play of a closed round. Returns how many were settled by this call."""
    result = await ensure_result(session_factory, round_id, now=now, clock=clock, redis=redis)
    settled = 0
    for play_id in await _pending_play_ids(session_factory, round_id):
        _, changed = await _settle_with_result(session_factory, play_id, result, redis)
        if changed:
            settled += 1
    if settled:
        logger.info("round_settled", round_id=round_id, settled_plays=settled)
    return settled


async def materialize_closed_rounds(
    session_factory: SessionFactory,
    *,
    now: datetime | None = None,
    lookback: int = 20,
    clock: PeriodClock | None = None,
    redis: object | None = None,
) -> SettlementReport:
    """Ensure results for recently closed rounds and settle anything still pending.

    Covers the last ``lookback`` closed rounds plus every older closed round
    that still has pending plays, so a restart after downtime catches up.
    """
    if lookback < 1:
        msg = "Lookback must be at least one round"
        raise InvalidInput(msg, lookback=lookback)
    clock = clock or get_clock()
    last = clock.last_closed_round_id(now)
    recent = clock.round_ids_between(clock.shift(last, -(lookback - 1)), last)

    async with session_factory() as db:
        rows = await db.execute(
            select(Play.round_id)
            .where(Play.outcome == "pending", Play.round_id <= last)
            .distinct()
        )
        stale = set(rows.scalars().all())

    report = SettlementReport()
    for round_id in sorted(stale.union(recent)):
        report.settled_plays += await settle_round(session_factory, round_id, now=now, clock=clock, redis=redis)
        report.rounds.append(round_id)
    return report


async def list_plays(
    db: AsyncSession,
    user_key: str,
    *,
    round_id: str | None = None,
    limit: int = 30,
) -> list[Play]:
    """A user's plays, newest first."""
    check_limit(limit)
    await require_user(db, user_key)
    query = select(Play).where(Play.user_key == user_key)
    if round_id is not None:
        query = query.where(Play.round_id == round_id)
    result = await db.execute(query.order_by(Play.created_at.desc(), Play.id.desc()).limit(limit))
    return list(result.scalars().all())
