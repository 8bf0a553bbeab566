"""Security utilities for JWTs and Meta token encryption.

WHAT:
    Centralizes JWT helpers for the session cookie and symmetric
    encryption for the Meta access tokens customers connect.

WHY:
    - JWT helpers back `get_current_user` in `portal/deps.py`.
    - Token encryption keeps Meta credentials out of plaintext storage.

REFERENCES:
    - portal/services/token_service.py (stores / restores Meta tokens)
"""

import base64
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken
from jose import jwt, JWTError


ALGORITHM = "HS256"
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "1440"))
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY", "")

logger = logging.getLogger(__name__)


if not JWT_SECRET or not TOKEN_ENCRYPTION_KEY:
    # Attempt to load from local .env if running in dev
    from portal.utils.env import load_env_file
    load_env_file()
    JWT_SECRET = JWT_SECRET or os.getenv("JWT_SECRET", "")
    JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "1440"))
    TOKEN_ENCRYPTION_KEY = TOKEN_ENCRYPTION_KEY or os.getenv("TOKEN_ENCRYPTION_KEY", "")

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is not set. Ensure .env is created or env var is exported.")

if not TOKEN_ENCRYPTION_KEY:
    raise RuntimeError(
        "TOKEN_ENCRYPTION_KEY is not set. Generate a 32-byte Fernet key with "
        "generate_keys.py and export it or add it to .env."
    )

try:
    # Validate key length by decoding without storing plaintext material.
    base64.urlsafe_b64decode(TOKEN_ENCRYPTION_KEY.encode("utf-8"))
    _cipher = Fernet(TOKEN_ENCRYPTION_KEY)
except (ValueError, TypeError) as exc:
    raise RuntimeError(
        "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte string. "
        "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
    ) from exc


def encrypt_secret(plaintext: str, *, context: str) -> str:
    """Encrypt a Meta access token before persisting.

    Args:
        plaintext: Raw secret to encrypt.
        context:   Friendly label for logs (e.g. "meta:<user id>").

    Returns:
        URL-safe base64 ciphertext suitable for DB storage.
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty secret.")

    ciphertext = _cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")
    logger.info("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
    return ciphertext


def decrypt_secret(ciphertext: str, *, context: str) -> str:
    """Decrypt a stored Meta access token for an API call.

    Raises:
        ValueError: If the stored value cannot be decrypted.
    """
    if not ciphertext:
        raise ValueError("Cannot decrypt empty secret.")

    try:
        plaintext = _cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        logger.info("[TOKEN_DECRYPT] Secret decrypted for %s (length=%d)", context, len(plaintext))
        return plaintext
    except InvalidToken as exc:
        logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
        raise ValueError("Unable to decrypt stored token.") from exc


def create_access_token(subject: str, expires_minutes: int | None = None) -> str:
    """Create a signed JWT for the given subject (user email)."""
    if expires_minutes is None:
        expires_minutes = JWT_EXPIRES_MINUTES
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes)
    to_encode: Dict[str, Any] = {"sub": subject, "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise exc
