from datetime import timedelta

import pytest
from jose import jwt

from app.core.config import settings
from app.core.security import (
    create_access_token,
    decode_and_validate,
    get_password_hash,
    verify_password,
    verify_token,
)


def test_password_hash_roundtrip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert hashed.startswith("$2")
    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)


@pytest.mark.parametrize("plain,hashed", [("", "x"), ("secret", ""), ("secret", "not-a-bcrypt-hash")])
def test_verify_password_rejects_bad_input(plain, hashed):
    assert verify_password(plain, hashed) is False


def test_access_token_claims():
    token = create_access_token(42)
    payload = decode_and_validate(token)
    assert payload["sub"] == "42"
    assert payload["id"] == 42
    assert payload["type"] == "access"
    # seven days by default
    assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 3600


def test_verify_token_returns_subject():
    assert verify_token(create_access_token(7)) == "7"


def test_expired_token_is_rejected():
    token = create_access_token(7, expires_delta=timedelta(seconds=-10))
    with pytest.raises(ValueError, match="expired"):
        decode_and_validate(token)
    assert verify_token(token) is None


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "1", "id": 1}, "another-secret", algorithm=settings.ALGORITHM)
    assert verify_token(forged) is None


def test_token_without_subject_is_rejected():
    token = jwt.encode({"type": "access"}, settings.JWT_SECRET, algorithm=settings.ALGORITHM)
    with pytest.raises(ValueError):
        decode_and_validate(token)