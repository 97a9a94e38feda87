"""
Password digests and bearer tokens.

Tokens are stateless HS256 JWTs embedding {userId, email, role}. Every caller
verifies through decode_access_token(), so a revocation check can be added
there without touching the routers.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from keeper.core.config import get_settings
from keeper.core.errors import Forbidden

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    settings = get_settings()
    return generate_password_hash(password, method=settings.password_hash_method)


def verify_password(digest: str, password: str) -> bool:
    return check_password_hash(digest, password)


def create_access_token(user_id: str, email: str, role: str) -> str:
    """Sign a token for the given identity, valid for JWT_EXPIRES_DAYS."""
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "email": email,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(days=settings.jwt_expires_days)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises:
        Forbidden: on any verification error
    """
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise Forbidden("Token has expired")
    except jwt.PyJWTError as e:
        logger.debug(f"Token rejected: {e}")
        raise Forbidden("Invalid token")

    if not claims.get("userId"):
        raise Forbidden("Invalid token")
    return claims
