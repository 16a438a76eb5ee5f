"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pointsbook.auth.jwt import verify_token
from pointsbook.database import get_session_factory
from pointsbook.db.models import User
from pointsbook.ledger.atomic import SessionFactory
from pointsbook.ledger.roles import Actor

_bearer = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    session_factory: SessionFactory = Depends(get_session_factory),
) -> Actor:
    """
    Verify the JWT and resolve it to an Actor.

    The role comes from the stored account, not the token, so a role change or
    block takes effect on the next request. Raises 401/403 on failure.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    async with session_factory() as db:
        user = await db.get(User, str(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if user.is_blocked:
        raise HTTPException(status_code=403, detail="Account blocked")
    return Actor.of(user)


async def get_staff_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Same as get_current_actor but requires an admin or superadmin."""
    if not actor.is_staff:
        raise HTTPException(status_code=403, detail="Staff access required")
    return actor
