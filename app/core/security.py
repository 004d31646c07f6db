# app/core/security.py
"""
Password hashing and JWT helpers.

- bcrypt via passlib CryptContext
- HS* access tokens via python-jose; claims: sub, id, type, iat, exp
- decode_and_validate() normalises every jose failure to ValueError
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Optional, Union

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from passlib.context import CryptContext

from app.core.config import settings

# =============================================================================
# Password hashing
# =============================================================================
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Checks a password against its hash; malformed hashes count as a mismatch."""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


# =============================================================================
# JWT
# =============================================================================
def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _expiry(override: Optional[timedelta] = None) -> datetime:
    if override:
        return _utcnow() + override
    return _utcnow() + timedelta(days=int(settings.ACCESS_TOKEN_EXPIRE_DAYS))


def create_jwt(
    subject: Union[str, int],
    expires_delta: Optional[timedelta] = None,
) -> str:
    now = _utcnow()
    claims: dict[str, Any] = {
        "sub": str(subject),
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(_expiry(expires_delta).timestamp()),
    }
    # older clients read the numeric user id from "id"
    if str(subject).isdigit():
        claims["id"] = int(subject)
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def decode_and_validate(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as e:
        raise ValueError("Token expired") from e
    except JWTClaimsError as e:
        raise ValueError(f"Invalid claims: {e}") from e
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e

    if "sub" not in payload and "id" not in payload:
        raise ValueError("Token subject (sub) missing")
    return payload


def create_access_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return create_jwt(subject, expires_delta=expires_delta)


def verify_token(token: str) -> Optional[str]:
    """Returns the token subject, or None when the token is unusable."""
    try:
        payload = decode_and_validate(token)
    except ValueError:
        return None
    sub = payload.get("sub", payload.get("id"))
    return str(sub) if sub is not None else None


__all__ = [
    "pwd_context",
    "get_password_hash",
    "verify_password",
    "create_jwt",
    "decode_and_validate",
    "create_access_token",
    "verify_token",
]
