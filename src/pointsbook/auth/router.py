"""Authentication router: /api/v1/auth/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pointsbook.auth.jwt import create_access_token
from pointsbook.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from pointsbook.auth.service import authenticate
from pointsbook.config import get_settings
from pointsbook.database import get_session_factory
from pointsbook.db.models import User
from pointsbook.ledger.atomic import SessionFactory
from pointsbook.users.service import create_user

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _issue_token(user: User) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.key, user.role),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session_factory: SessionFactory = Depends(get_session_factory),
) -> TokenResponse:
    """Register an end-user account and log it in."""
    user = await create_user(session_factory, name=body.name, password=body.password, phone=body.phone)
    return _issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    session_factory: SessionFactory = Depends(get_session_factory),
) -> TokenResponse:
    """Login with key or phone plus password."""
    user = await authenticate(session_factory, body.login, body.password)
    return _issue_token(user)
