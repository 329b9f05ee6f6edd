"""
Password hashing and access tokens.

Passwords are stored as bcrypt hashes. Access tokens are HS256 JWTs carrying
``userId`` and ``role`` claims; their lifetime comes from JWT_EXPIRES_DAYS.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt
from starlette.concurrency import run_in_threadpool

from canteen.core.config import get_settings
from canteen.core.errors import AuthenticationError

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
_BCRYPT_MAX_BYTES = 72


def _encode_password(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password_sync(password: str) -> str:
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(_encode_password(password), salt).decode("utf-8")


def verify_password_sync(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_encode_password(password), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


async def hash_password(password: str) -> str:
    """Hash off the event loop; bcrypt is deliberately slow."""
    return await run_in_threadpool(hash_password_sync, password)


async def verify_password(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(verify_password_sync, password, password_hash)


def generate_token(user_id: str, role: str) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """
    Validate a bearer token and return its claims.

    Raises:
        AuthenticationError: "Token expired" or "Invalid token"
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if not claims.get("userId"):
        raise AuthenticationError("Invalid token")
    return claims
