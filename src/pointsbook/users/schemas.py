"""Request/response schemas for account and ledger history endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from pointsbook.auth.schemas import ProfileUpdateRequest, UserResponse


class TransactionResponse(BaseModel):
    """One ledger entry."""

    id: int
    user_key: str
    type: str
    amount: int
    note: str
    acting_admin_key: str | None = None
    kind: str
    balance_after: int
    play_id: int | None = None
    reverses_id: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SummaryResponse(BaseModel):
    """Totals over an optional date range."""

    admin_credit: int
    net_points: int
    win: int
    loss: int

    model_config = {"from_attributes": True}


__all__ = [
    "ProfileUpdateRequest",
    "SummaryResponse",
    "TransactionResponse",
    "UserResponse",
]
