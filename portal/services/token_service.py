"""Token service for encrypting and persisting Meta credentials.

WHAT:
    Wraps the low-level encryption helpers and encapsulates how a customer's
    Meta access token is stored and restored.

WHY:
    - Keeps encryption logic out of routers.
    - The metrics ingestor needs a single call that either yields a usable
      token or raises AuthError.

REFERENCES:
    - portal/security.py (encrypt_secret / decrypt_secret)
    - portal/services/metrics_ingestor.py (consumes decrypted tokens)
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.errors import AuthError, PersistenceError, ValidationError
from portal.models import MetaCredential
from portal.security import encrypt_secret, decrypt_secret
from portal.services.progress_store import load_customer

logger = logging.getLogger(__name__)


def _label(customer_id: UUID) -> str:
    return f"meta:{customer_id}"


def store_meta_token(db: Session, customer_id: UUID, access_token: str) -> MetaCredential:
    """Encrypt and persist the Meta access token for a customer (upsert).

    Raises:
        ValidationError: Empty token
        NotFoundError: Unknown customer
        PersistenceError: Storage failure
    """
    access_token = (access_token or "").strip()
    if not access_token:
        raise ValidationError("Access token is required", fields=["access_token"])

    label = _label(customer_id)
    try:
        customer = load_customer(db, customer_id)
        encrypted = encrypt_secret(access_token, context=label)

        credential = (
            db.query(MetaCredential)
            .filter(MetaCredential.user_id == customer_id)
            .first()
        )
        if credential:
            credential.access_token_enc = encrypted
            credential.updated_at = datetime.utcnow()
            logger.info("[TOKEN_SERVICE] Updated encrypted token for %s", label)
        else:
            credential = MetaCredential(user_id=customer_id, access_token_enc=encrypted)
            db.add(credential)
            logger.info("[TOKEN_SERVICE] Created encrypted token for %s", label)

        customer.meta_connected = True
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[TOKEN_SERVICE] Failed to store token for %s", label)
        raise PersistenceError("Could not store Meta credential") from exc

    db.refresh(credential)
    return credential


def get_meta_access_token(db: Session, customer_id: UUID) -> str:
    """Return the customer's decrypted Meta access token.

    Raises:
        AuthError: No credential stored, or it can no longer be decrypted
    """
    label = _label(customer_id)
    credential = (
        db.query(MetaCredential)
        .filter(MetaCredential.user_id == customer_id)
        .first()
    )

    if not credential or not credential.access_token_enc:
        logger.warning("[TOKEN_SERVICE] No Meta token stored for %s", label)
        raise AuthError("Meta account is not connected")

    try:
        return decrypt_secret(credential.access_token_enc, context=label)
    except ValueError as exc:
        logger.error("[TOKEN_SERVICE] Failed to decrypt token for %s: %s", label, exc)
        raise AuthError("Stored Meta credential is unreadable, please reconnect") from exc
