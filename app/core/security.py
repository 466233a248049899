"""
Security utilities for AdsOptimizer.

Implements:
- Password hashing with Argon2id
- Google Ads refresh token encryption with Fernet
- JWT access/refresh token generation and validation

SECURITY CRITICAL: This module handles sensitive operations.
"""

import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Tuple

import structlog
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt
from pydantic import BaseModel

from app.config import settings

logger = structlog.get_logger()


# =============================================================================
# Password Hashing (Argon2id)
# =============================================================================

# - Type.ID provides best protection against GPU/ASIC attacks
# - Memory cost: 64MB (65536 KiB)
# - Time cost: 3 iterations
# - Parallelism: 4 threads
password_hasher = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify
        password_hash: Stored password hash

    Returns:
        True if password matches, False otherwise
    """
    try:
        password_hasher.verify(password_hash, password)
        return True
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def check_needs_rehash(password_hash: str) -> bool:
    """
    Check if a password hash needs to be rehashed.

    Called after a successful login to upgrade old hashes to the current
    parameters.
    """
    return password_hasher.check_needs_rehash(password_hash)


# =============================================================================
# Token Encryption (Fernet)
# =============================================================================

@lru_cache
def _development_key() -> bytes:
    logger.warning("encryption_key_not_configured", using="ephemeral development key")
    return Fernet.generate_key()


def get_fernet() -> Fernet:
    """Get Fernet instance for encryption/decryption."""
    # Generate with: Fernet.generate_key().decode()
    key = settings.encryption_key
    if not key:
        # Changes on restart, stored tokens become unreadable
        return Fernet(_development_key())
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(token: str) -> bytes:
    """
    Encrypt a Google Ads refresh token for storage.

    Args:
        token: Plain text token

    Returns:
        Encrypted token bytes
    """
    return get_fernet().encrypt(token.encode())


def decrypt_token(encrypted_token: bytes) -> Optional[str]:
    """
    Decrypt an encrypted token.

    Returns:
        Decrypted token string, or None if decryption fails
    """
    try:
        return get_fernet().decrypt(encrypted_token).decode()
    except InvalidToken:
        return None


# =============================================================================
# JWT Token Management
# =============================================================================

class TokenData(BaseModel):
    """Data extracted from a valid JWT token."""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    token_type: str = "access"
    exp: datetime


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User identifier
        email: User e-mail
        role: User role (manager or client)
        expires_delta: Custom expiration time

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "access",
        "exp": now + expires_delta,
        "iat": now,
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT refresh token."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.jwt_refresh_token_expire_days)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "refresh",
        "exp": now + expires_delta,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> Optional[TokenData]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        token_type: Expected token type ("access" or "refresh")

    Returns:
        TokenData if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != token_type or not payload.get("sub"):
        return None

    return TokenData(
        user_id=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role"),
        token_type=payload["type"],
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def create_token_pair(
    user_id: str,
    email: Optional[str] = None,
    role: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Create both access and refresh tokens.

    Returns:
        Tuple of (access_token, refresh_token)
    """
    access_token = create_access_token(user_id, email, role)
    refresh_token = create_refresh_token(user_id)
    return access_token, refresh_token
