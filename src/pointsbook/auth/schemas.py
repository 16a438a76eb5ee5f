"""Request/response schemas for authentication and account endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Account as seen by its owner or by staff."""

    key: str
    role: str
    name: str
    phone: str | None = None
    points: int
    admin_wallet: int = 0
    admin_used: int = 0
    admin_remaining: int = 0
    is_blocked: bool = False
    created_by: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProfileUpdateRequest(BaseModel):
    """Change own display name and/or password."""

    name: str | None = Field(None, max_length=128)
    password: str | None = Field(None, max_length=128)


# ---------------------------------------------------------------------------
# Login / registration
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Self-registration of an end-user account."""

    name: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1, max_length=128)
    phone: str | None = Field(None, max_length=20)


class LoginRequest(BaseModel):
    """Login with user key or phone number plus password."""

    login: str = Field(..., min_length=1, max_length=32)
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    """Token response returned after successful auth."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    user: UserResponse
