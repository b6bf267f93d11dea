"""Authentication module for validating bearer tokens issued by the auth service."""
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import User


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

DEV_USER_EXTERNAL_ID = "dev|local-development-user"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_jwt(token: str, settings: Settings) -> dict:
    """
    Decode and validate a JWT signed with the shared secret.

    Raises:
        HTTPException: If the token is invalid, expired, or badly signed.
    """
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )

    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.MissingRequiredClaimError as e:
        raise _unauthorized(f"Invalid token: missing {e.claim} claim")
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid token: {e}")


async def get_or_create_user(
    db: AsyncSession,
    external_id: str,
    email: str | None = None,
) -> User:
    """
    Get existing user or create new one from token claims.

    Note: Uses flush(), not commit. Session generator handles commit at request end.
    """
    result = await db.execute(select(User).where(User.external_id == external_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(external_id=external_id, email=email)
        db.add(user)
        await db.flush()
    elif email and user.email != email:
        user.email = email
        await db.flush()

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """
    Dependency that validates the bearer token and returns the current user.

    In DEV_MODE, bypasses auth and returns a local development user.
    """
    if settings.dev_mode:
        return await get_or_create_user(db, DEV_USER_EXTERNAL_ID, email="dev@localhost")

    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_jwt(credentials.credentials, settings)
    return await get_or_create_user(
        db,
        external_id=str(payload["sub"]),
        email=payload.get("email"),
    )
