"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from .database import get_db
from .models import RoleEnum, User
from .security import decode_token


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "https://app.nextmove-consulting.de,http://localhost:5173"
    FRONTEND_URL: str = "https://app.nextmove-consulting.de"

    # Meta Marketing API
    META_APP_ID: Optional[str] = None
    META_APP_SECRET: Optional[str] = None
    META_API_VERSION: str = "v18.0"
    META_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Transactional email (account approval)
    RESEND_API_KEY: Optional[str] = None
    RESEND_FROM_EMAIL: str = "NextMove Portal <portal@nextmove-consulting.de>"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_user(
    db: Session = Depends(get_db),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
) -> User:
    """Resolve the current user from the `access_token` cookie.

    The cookie value is expected to be in the form: "Bearer <jwt>".
    """
    if not access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    if access_token.startswith("Bearer "):
        token = access_token[len("Bearer ") :]
    else:
        token = access_token

    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = (
        db.query(User)
        .filter(User.email == subject)
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_customer(current_user: User = Depends(get_current_user)) -> User:
    """Require an approved customer account."""
    if current_user.role != RoleEnum.customer:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Customer account required")
    if not current_user.is_approved:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is awaiting approval")
    return current_user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """Require an admin account."""
    if current_user.role != RoleEnum.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
