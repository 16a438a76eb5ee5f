"""Result oracle: deterministic per-round outcomes, persisted exactly once.

The outcome is ``sha256(round_id)``: the first four digest bytes read as a
big-endian unsigned integer, modulo 10. Anyone who knows the round id can
compute it in advance, so this derivation is for demonstration play only
and must not settle anything of real value. Swapping in a server-seeded or
commit-reveal scheme means changing ``derive_outcome`` and ``RESULT_SOURCE``.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.db.models import RoundResult
from pointsbook.ledger.atomic import SessionFactory, run_atomic
from pointsbook.ledger.errors import InvalidInput, NotFound
from pointsbook.ledger.history import check_limit
from pointsbook.pubsub import ROUND_RESULT_CHANNEL, publish_event
from pointsbook.rounds.clock import PeriodClock, get_clock

logger = structlog.get_logger()

RESULT_SOURCE = "sha256-v1"

VIOLET_NUMBERS = frozenset({0, 5})
GREEN_NUMBERS = frozenset({1, 3, 7, 9})
RED_NUMBERS = frozenset({2, 4, 6, 8})


@dataclass(frozen=True)
class DerivedOutcome:
    number: int
    color: str
    size: str
    digest: str


def color_for(number: int) -> str:
    """0 and 5 are violet, the other odd digits green, the even digits red."""
    if number in VIOLET_NUMBERS:
        return "violet"
    if number in GREEN_NUMBERS:
        return "green"
    if number in RED_NUMBERS:
        return "red"
    msg = f"Outcome must be a single digit, got {number}"
    raise ValueError(msg)


def size_for(number: int) -> str:
    return "big" if number >= 5 else "small"


def derive_outcome(round_id: str) -> DerivedOutcome:
    """Pure derivation; identical on every process for the same round id."""
    digest = hashlib.sha256(round_id.encode("utf-8")).digest()
    number = int.from_bytes(digest[:4], "big") % 10
    return DerivedOutcome(
        number=number,
        color=color_for(number),
        size=size_for(number),
        digest=digest.hex(),
    )


async def ensure_result(
    session_factory: SessionFactory,
    round_id: str,
    *,
    now: datetime | None = None,
    clock: PeriodClock | None = None,
    redis: object | None = None,
) -> RoundResult:
    """Return the round's result, creating it on first request.

    Only closed rounds have results. Concurrent callers for the same round
    all observe the single stored row: losers of the insert race hit the
    primary key, retry, and read the winner's row.
    """
    clock = clock or get_clock()
    clock.parse_round_id(round_id)
    if not clock.is_closed(round_id, now):
        _, closes_at = clock.round_bounds(round_id)
        msg = f"Round {round_id} is still open"
        raise InvalidInput(msg, round_id=round_id, closes_at=closes_at.isoformat())

    async def _unit(db: AsyncSession) -> tuple[RoundResult, bool]:
        existing = await db.get(RoundResult, round_id)
        if existing is not None:
            return existing, False

        outcome = derive_outcome(round_id)
        result = RoundResult(
            round_id=round_id,
            number=outcome.number,
            color=outcome.color,
            size=outcome.size,
            digest=outcome.digest,
            source=RESULT_SOURCE,
            created_at=datetime.now(timezone.utc),
        )
        db.add(result)
        await db.flush()
        return result, True

    result, created = await run_atomic(session_factory, _unit)
    if created:
        logger.info("round_result_created", round_id=round_id, number=result.number, color=result.color)
        await publish_event(redis, ROUND_RESULT_CHANNEL, {
            "round_id": result.round_id,
            "number": result.number,
            "color": result.color,
            "size": result.size,
        })
    return result


async def get_result(db: AsyncSession, round_id: str) -> RoundResult:
    """Read a stored result without materializing it."""
    result = await db.get(RoundResult, round_id)
    if result is None:
        msg = f"No result for round {round_id}"
        raise NotFound(msg, round_id=round_id)
    return result


async def list_recent_results(db: AsyncSession, limit: int = 30) -> list[RoundResult]:
    """Stored results, newest round first. Round ids sort chronologically."""
    check_limit(limit)
    result = await db.execute(
        select(RoundResult).order_by(RoundResult.round_id.desc()).limit(limit)
    )
    return list(result.scalars().all())
