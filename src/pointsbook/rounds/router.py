"""Rounds router: /api/v1/rounds/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.auth.dependencies import get_current_actor, get_staff_actor
from pointsbook.config import get_settings
from pointsbook.database import get_session, get_session_factory
from pointsbook.db.models import Play
from pointsbook.ledger.atomic import SessionFactory
from pointsbook.ledger.errors import NotFound
from pointsbook.ledger.roles import Actor
from pointsbook.redis_client import get_optional_redis
from pointsbook.rounds.clock import PeriodClock, get_clock
from pointsbook.rounds.oracle import ensure_result, list_recent_results
from pointsbook.rounds.plays import list_plays, materialize_closed_rounds, place_play, settle_play
from pointsbook.rounds.schemas import (
    CurrentRoundResponse,
    PlayRequest,
    PlayResponse,
    RoundResultResponse,
    SettlementResponse,
)

router = APIRouter(prefix="/api/v1/rounds", tags=["Rounds"])


@router.get("/current", response_model=CurrentRoundResponse)
async def current_round(clock: PeriodClock = Depends(get_clock)) -> CurrentRoundResponse:
    """The open round and when it closes."""
    round_id = clock.current_round_id()
    starts_at, ends_at = clock.round_bounds(round_id)
    return CurrentRoundResponse(
        round_id=round_id,
        starts_at=starts_at,
        ends_at=ends_at,
        seconds_remaining=clock.seconds_remaining(),
        window_seconds=clock.window_seconds,
    )


@router.get("/results", response_model=list[RoundResultResponse])
async def recent_results(
    limit: int = Query(30),
    db: AsyncSession = Depends(get_session),
) -> list[RoundResultResponse]:
    """Stored results, newest round first."""
    return [RoundResultResponse.model_validate(r) for r in await list_recent_results(db, limit=limit)]


@router.get("/{round_id}/result", response_model=RoundResultResponse)
async def round_result(
    round_id: str,
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: PeriodClock = Depends(get_clock),
    redis: Redis | None = Depends(get_optional_redis),
) -> RoundResultResponse:
    """Result of a closed round, created on first request."""
    result = await ensure_result(session_factory, round_id, clock=clock, redis=redis)
    return RoundResultResponse.model_validate(result)


@router.post("/plays", response_model=PlayResponse, status_code=201)
async def post_play(
    body: PlayRequest,
    actor: Actor = Depends(get_current_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: PeriodClock = Depends(get_clock),
    redis: Redis | None = Depends(get_optional_redis),
) -> PlayResponse:
    """Stake points on the current round."""
    play = await place_play(session_factory, actor, body.selection, body.stake, clock=clock, redis=redis)
    return PlayResponse.model_validate(play)


@router.get("/plays/me", response_model=list[PlayResponse])
async def my_plays(
    round_id: str | None = Query(None),
    limit: int = Query(30),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
) -> list[PlayResponse]:
    """Own plays, newest first."""
    return [PlayResponse.model_validate(p) for p in await list_plays(db, actor.key, round_id=round_id, limit=limit)]


@router.post("/plays/{play_id}/settle", response_model=PlayResponse)
async def post_settle_play(
    play_id: int,
    actor: Actor = Depends(get_current_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: PeriodClock = Depends(get_clock),
    redis: Redis | None = Depends(get_optional_redis),
) -> PlayResponse:
    """Settle one of the caller's plays once its round has closed."""
    async with session_factory() as db:
        play = await db.get(Play, play_id)
    if play is None:
        msg = f"Play {play_id} not found"
        raise NotFound(msg, play_id=play_id)
    if play.user_key != actor.key and not actor.is_staff:
        raise HTTPException(status_code=403, detail="Not your play")
    settled = await settle_play(session_factory, play_id, clock=clock, redis=redis)
    return PlayResponse.model_validate(settled)


@router.post("/settle", response_model=SettlementResponse)
async def post_settle(
    _actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: PeriodClock = Depends(get_clock),
    redis: Redis | None = Depends(get_optional_redis),
) -> SettlementResponse:
    """Materialize recent closed rounds and settle pending plays."""
    report = await materialize_closed_rounds(
        session_factory,
        lookback=get_settings().round_settle_lookback,
        clock=clock,
        redis=redis,
    )
    return SettlementResponse.model_validate(report)
