"""
Async Dependencies for Authentication and shared clients
"""
import logging

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

import livestockway.core.config as config
from livestockway.db import get_async_db
from livestockway.models.user import User

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> dict:
    if not config.JWT_SECRET:
        logger.error("JWT_SECRET not set - cannot verify bearer tokens")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured.",
        )
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_async_db)
) -> User:
    """
    Extracts and validates the bearer token from the Authorization header.
    Returns async User model instance.
    """
    auth_header = request.headers.get('authorization') or request.headers.get('Authorization')
    if not auth_header or not auth_header.lower().startswith('bearer '):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing."
        )
    token = auth_header.split(' ', 1)[1].strip()
    claims = decode_access_token(token)

    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found."
        )
    return user


async def require_hauler(user: User = Depends(get_current_user)) -> User:
    """Verify user is a hauler (company or individual)"""
    if not user.role.startswith("hauler"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Hauler access required for this endpoint"
        )
    return user


def get_stripe_gateway(request: Request):
    return request.app.state.stripe_gateway


def get_task_queue(request: Request):
    return request.app.state.task_queue
