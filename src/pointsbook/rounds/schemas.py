"""Request/response schemas for round and play endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pointsbook.ledger.balance import MAX_POINTS


class CurrentRoundResponse(BaseModel):
    round_id: str
    starts_at: datetime
    ends_at: datetime
    seconds_remaining: float
    window_seconds: int


class RoundResultResponse(BaseModel):
    round_id: str
    number: int
    color: str
    size: str
    digest: str
    source: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PlayRequest(BaseModel):
    """Stake on the current round: a digit 0-9, red/green/violet, or big/small."""

    selection: str = Field(..., min_length=1, max_length=16)
    stake: int = Field(..., gt=0, le=MAX_POINTS)


class PlayResponse(BaseModel):
    id: int
    user_key: str
    round_id: str
    selection: str
    stake: int
    outcome: str
    payout: int
    created_at: datetime
    settled_at: datetime | None = None

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    rounds: list[str]
    settled_plays: int

    model_config = {"from_attributes": True}
