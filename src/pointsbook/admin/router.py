"""Staff router: /api/v1/admin/* endpoints for account and points administration."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.admin.schemas import (
    AdjustRequest,
    BalanceChangeResponse,
    BlockRequest,
    ClearHistoryRequest,
    ClearHistoryResponse,
    CreateUserRequest,
    PasswordResetRequest,
)
from pointsbook.auth.dependencies import get_staff_actor
from pointsbook.database import get_session, get_session_factory
from pointsbook.ledger.allowance import adjust_allowance, adjust_balance_as_actor
from pointsbook.ledger.atomic import SessionFactory
from pointsbook.ledger.history import list_transactions, require_user, summarize
from pointsbook.ledger.roles import Actor, require_manage
from pointsbook.ledger.undo import undo_last_admin_transaction
from pointsbook.redis_client import get_optional_redis
from pointsbook.rounds.plays import list_plays
from pointsbook.rounds.schemas import PlayResponse
from pointsbook.users.schemas import SummaryResponse, TransactionResponse, UserResponse
from pointsbook.users.service import (
    clear_history,
    create_user,
    delete_user,
    list_users,
    reset_password,
    set_blocked,
)

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


async def _managed_user(db: AsyncSession, actor: Actor, user_key: str) -> None:
    target = await require_user(db, user_key)
    require_manage(actor, target)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
async def get_users(
    limit: int = Query(200),
    actor: Actor = Depends(get_staff_actor),
    db: AsyncSession = Depends(get_session),
) -> list[UserResponse]:
    """Accounts the caller manages, newest first."""
    return [UserResponse.model_validate(u) for u in await list_users(db, actor, limit=limit)]


@router.post("/users", response_model=UserResponse, status_code=201)
async def post_user(
    body: CreateUserRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> UserResponse:
    """Provision a user (admins) or a user/admin (superadmins)."""
    user = await create_user(
        session_factory,
        name=body.name,
        password=body.password,
        phone=body.phone,
        key=body.key,
        role=body.role,
        actor=actor,
    )
    return UserResponse.model_validate(user)


@router.get("/users/{user_key}", response_model=UserResponse)
async def get_user(
    user_key: str,
    actor: Actor = Depends(get_staff_actor),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    target = await require_user(db, user_key)
    require_manage(actor, target)
    return UserResponse.model_validate(target)


@router.delete("/users/{user_key}", status_code=204)
async def remove_user(
    user_key: str,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> Response:
    """Delete an account with its transactions and plays."""
    await delete_user(session_factory, actor, user_key)
    return Response(status_code=204)


@router.post("/users/{user_key}/password", response_model=UserResponse)
async def post_password(
    user_key: str,
    body: PasswordResetRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> UserResponse:
    user = await reset_password(session_factory, actor, user_key, body.password)
    return UserResponse.model_validate(user)


@router.post("/users/{user_key}/block", response_model=UserResponse)
async def post_block(
    user_key: str,
    body: BlockRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> UserResponse:
    user = await set_blocked(session_factory, actor, user_key, body.blocked)
    return UserResponse.model_validate(user)


@router.post("/users/{user_key}/clear-history", response_model=ClearHistoryResponse)
async def post_clear_history(
    user_key: str,
    body: ClearHistoryRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> ClearHistoryResponse:
    """Delete an account's transactions and plays, optionally zeroing the wallet."""
    points = await clear_history(session_factory, actor, user_key, reset_wallet=body.reset_wallet)
    return ClearHistoryResponse(user_key=user_key, points=points)


# ---------------------------------------------------------------------------
# Points and allowance
# ---------------------------------------------------------------------------


@router.post("/users/{user_key}/points", response_model=BalanceChangeResponse)
async def post_points(
    user_key: str,
    body: AdjustRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
    redis: Redis | None = Depends(get_optional_redis),
) -> BalanceChangeResponse:
    """Credit or debit a managed account. Admin credits spend allowance."""
    change = await adjust_balance_as_actor(session_factory, actor, user_key, body.delta, body.note, redis=redis)
    return BalanceChangeResponse.model_validate(change)


@router.post("/users/{user_key}/allowance", response_model=UserResponse)
async def post_allowance(
    user_key: str,
    body: AdjustRequest,
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> UserResponse:
    """Top up or lower an admin's allowance (superadmin only)."""
    admin = await adjust_allowance(session_factory, actor, user_key, body.delta, body.note)
    return UserResponse.model_validate(admin)


@router.post("/undo", response_model=BalanceChangeResponse)
async def post_undo(
    actor: Actor = Depends(get_staff_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
    redis: Redis | None = Depends(get_optional_redis),
) -> BalanceChangeResponse:
    """Reverse the caller's most recent points adjustment."""
    change = await undo_last_admin_transaction(session_factory, actor, redis=redis)
    return BalanceChangeResponse.model_validate(change)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/users/{user_key}/transactions", response_model=list[TransactionResponse])
async def user_transactions(
    user_key: str,
    kind: str | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    limit: int = Query(30),
    actor: Actor = Depends(get_staff_actor),
    db: AsyncSession = Depends(get_session),
) -> list[TransactionResponse]:
    await _managed_user(db, actor, user_key)
    rows = await list_transactions(db, user_key, kind=kind, since=since, until=until, limit=limit)
    return [TransactionResponse.model_validate(t) for t in rows]


@router.get("/users/{user_key}/plays", response_model=list[PlayResponse])
async def user_plays(
    user_key: str,
    round_id: str | None = Query(None),
    limit: int = Query(30),
    actor: Actor = Depends(get_staff_actor),
    db: AsyncSession = Depends(get_session),
) -> list[PlayResponse]:
    await _managed_user(db, actor, user_key)
    rows = await list_plays(db, user_key, round_id=round_id, limit=limit)
    return [PlayResponse.model_validate(p) for p in rows]


@router.get("/users/{user_key}/summary", response_model=SummaryResponse)
async def user_summary(
    user_key: str,
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    actor: Actor = Depends(get_staff_actor),
    db: AsyncSession = Depends(get_session),
) -> SummaryResponse:
    await _managed_user(db, actor, user_key)
    summary = await summarize(db, user_key, since=since, until=until)
    return SummaryResponse.model_validate(summary)
