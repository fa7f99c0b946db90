"""FastAPI dependencies for the engine, authentication, and idempotency."""

from typing import Optional
from fastapi import Depends, Header, Request
import jwt
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, ValidationError
from ..services.reservation_engine import ReservationEngine


def get_engine(request: Request) -> ReservationEngine:
    """Reservation engine created by the application lifespan."""
    return request.app.state.engine


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        # PyJWT rejects expired tokens when "exp" is present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    return {
        "user_id": user_id,
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


async def get_actor(user: dict = Depends(get_current_user)) -> str:
    """Identity recorded on audit events."""
    return user.get("username") or user["user_id"]


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate idempotency key from request headers.

    Args:
        idempotency_key: Idempotency key from header

    Returns:
        str: Validated idempotency key or None if not provided

    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    # Validate key length and format
    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError(
            detail="Idempotency key must be between 1 and 255 characters",
            errors={"Idempotency-Key": "length must be 1..255"},
        )

    return idempotency_key


Engine = Depends(get_engine)
Actor = Depends(get_actor)
IdempotencyKey = Depends(get_idempotency_key)
