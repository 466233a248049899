"""
Tests for password hashing, token encryption and JWT handling.
"""

from datetime import timedelta

from app.core.security import (
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decrypt_token,
    encrypt_token,
    hash_password,
    verify_password,
    verify_token,
)


def test_password_hash_roundtrip():
    password_hash = hash_password("s3nha-forte")
    assert password_hash.startswith("$argon2id$")
    assert verify_password("s3nha-forte", password_hash) is True
    assert verify_password("errada", password_hash) is False


def test_verify_password_rejects_malformed_hash():
    assert verify_password("anything", "not-a-hash") is False


def test_refresh_token_encryption():
    encrypted = encrypt_token("1//refresh-token")
    assert isinstance(encrypted, bytes)
    assert b"refresh-token" not in encrypted
    assert decrypt_token(encrypted) == "1//refresh-token"


def test_decrypt_garbage_returns_none():
    assert decrypt_token(b"not-a-fernet-token") is None


def test_access_token_claims():
    token = create_access_token("user-1", email="a@b.com", role="manager")
    data = verify_token(token)
    assert data is not None
    assert data.user_id == "user-1"
    assert data.email == "a@b.com"
    assert data.role == "manager"
    assert data.token_type == "access"


def test_token_type_is_enforced():
    access, refresh = create_token_pair("user-1", "a@b.com", "client")
    assert verify_token(access, token_type="refresh") is None
    assert verify_token(refresh, token_type="access") is None
    assert verify_token(refresh, token_type="refresh").user_id == "user-1"


def test_expired_token_is_rejected():
    token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
    assert verify_token(token) is None


def test_tampered_token_is_rejected():
    header, payload, signature = create_refresh_token("user-1").split(".")
    forged = ("A" if signature[0] != "A" else "B") + signature[1:]
    assert verify_token(f"{header}.{payload}.{forged}", token_type="refresh") is None
