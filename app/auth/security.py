# app/auth/security.py
"""
Identity provider tokens.

Sessions are issued by the external identity provider as HS256 JWTs signed
with the shared JWT_SECRET_KEY. Claims used here: ``sub`` (user id),
``email``, ``name`` and ``picture``.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from loguru import logger

from app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a signed token in the identity provider's format.
    Used by scripts and tests; production tokens come from the provider.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})

    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM
    )


def decode_token(token: str) -> dict:
    """
    Decodes a JWT token and returns its payload.
    Raises JWTError if the token is invalid or expired.
    """
    try:
        return jwt.decode(
            token, settings.JWT_SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"JWT decoding error: {e}")
        raise
