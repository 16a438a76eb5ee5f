"""Own-account router: /api/v1/users/me* endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pointsbook.auth.dependencies import get_current_actor
from pointsbook.database import get_session, get_session_factory
from pointsbook.ledger.atomic import SessionFactory
from pointsbook.ledger.history import list_transactions, require_user, summarize
from pointsbook.ledger.roles import Actor
from pointsbook.users.schemas import ProfileUpdateRequest, SummaryResponse, TransactionResponse, UserResponse
from pointsbook.users.service import update_profile

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Get own account, including the current balance."""
    user = await require_user(db, actor.key)
    return UserResponse.model_validate(user)


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    body: ProfileUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> UserResponse:
    """Change own display name and/or password."""
    user = await update_profile(session_factory, actor, name=body.name, password=body.password)
    return UserResponse.model_validate(user)


@router.get("/me/transactions", response_model=list[TransactionResponse])
async def my_transactions(
    kind: str | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    limit: int = Query(30),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
) -> list[TransactionResponse]:
    """Own transactions, newest first."""
    rows = await list_transactions(db, actor.key, kind=kind, since=since, until=until, limit=limit)
    return [TransactionResponse.model_validate(t) for t in rows]


@router.get("/me/summary", response_model=SummaryResponse)
async def my_summary(
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
) -> SummaryResponse:
    """Own admin credit, net points and won/lost stakes."""
    summary = await summarize(db, actor.key, since=since, until=until)
    return SummaryResponse.model_validate(summary)
