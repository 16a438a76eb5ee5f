"""Request/response schemas for staff endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from pointsbook.ledger.balance import MAX_POINTS
from pointsbook.ledger.roles import Role


class CreateUserRequest(BaseModel):
    """Provision an account. Admins may only create ``user`` accounts."""

    name: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1, max_length=128)
    phone: str | None = Field(None, max_length=20)
    key: str | None = Field(None, max_length=32)
    role: Role = Role.USER


class AdjustRequest(BaseModel):
    """Signed points delta: positive credits, negative debits."""

    delta: int = Field(..., ge=-MAX_POINTS, le=MAX_POINTS)
    note: str = Field("", max_length=500)


class BalanceChangeResponse(BaseModel):
    user_key: str
    delta: int
    new_balance: int
    transaction_id: int

    model_config = {"from_attributes": True}


class PasswordResetRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)


class BlockRequest(BaseModel):
    blocked: bool


class ClearHistoryRequest(BaseModel):
    reset_wallet: bool = False


class ClearHistoryResponse(BaseModel):
    user_key: str
    points: int
