"""Lead notification derivation.

WHAT:
    Compares a metrics snapshot with the customer's snapshot dated just before
    it and creates a "new leads" notification when the lead count went up. Also
    lists notifications and marks them read.

WHY:
    Customers should notice new leads without opening the dashboard charts.

RULES:
    - No earlier snapshot: nothing (the first snapshot never notifies).
    - snapshot.leads > previous.leads: one notification, "N new lead(s) via
      Meta Ads" with singular/plural agreeing with N.
    - Otherwise: nothing.
    - A notification remembers the snapshot it was derived from, so deriving
      twice for the same snapshot never yields a duplicate.

REFERENCES:
    - portal/services/metrics_ingestor.py (calls derive_for_snapshot once per stored snapshot)
    - portal/routers/notifications.py
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.errors import NotFoundError, PersistenceError
from portal.models import MetricsSnapshot, Notification, NotificationTypeEnum

logger = logging.getLogger(__name__)


def lead_message(new_leads: int) -> str:
    noun = "lead" if new_leads == 1 else "leads"
    return f"{new_leads} new {noun} via Meta Ads"


def derive_for_snapshot(db: Session, snapshot: MetricsSnapshot) -> Optional[Notification]:
    """Create a lead notification if `snapshot` gained leads over its predecessor.

    The predecessor is the customer's newest snapshot dated before `snapshot`,
    so a snapshot committed concurrently afterwards never hides this one.

    Returns:
        The notification for `snapshot`, or None

    Raises:
        PersistenceError: Snapshots could not be read or the notification stored
    """
    try:
        previous = (
            db.query(MetricsSnapshot)
            .filter(
                MetricsSnapshot.user_id == snapshot.user_id,
                MetricsSnapshot.date < snapshot.date,
            )
            .order_by(MetricsSnapshot.date.desc())
            .first()
        )
        if previous is None:
            return None

        new_leads = (snapshot.leads or 0) - (previous.leads or 0)
        if new_leads <= 0:
            return None

        existing = (
            db.query(Notification)
            .filter(Notification.snapshot_id == snapshot.id)
            .first()
        )
        if existing:
            logger.info("[NOTIFY] Snapshot %s already notified", snapshot.id)
            return existing

        notification = Notification(
            user_id=snapshot.user_id,
            snapshot_id=snapshot.id,
            type=NotificationTypeEnum.lead,
            message=lead_message(new_leads),
            read=False,
        )
        db.add(notification)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[NOTIFY] Failed to derive lead notification for snapshot %s", snapshot.id)
        raise PersistenceError("Could not store notification") from exc

    db.refresh(notification)
    logger.info("[NOTIFY] %s for customer %s", notification.message, snapshot.user_id)
    return notification


def derive_for_latest(db: Session, customer_id: UUID) -> Optional[Notification]:
    """Derive the lead notification for the customer's newest snapshot."""
    latest = (
        db.query(MetricsSnapshot)
        .filter(MetricsSnapshot.user_id == customer_id)
        .order_by(MetricsSnapshot.date.desc())
        .first()
    )
    if latest is None:
        return None
    return derive_for_snapshot(db, latest)


def list_notifications(db: Session, customer_id: UUID, limit: int = 50) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == customer_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def mark_read(db: Session, customer_id: UUID, notification_id: UUID) -> Notification:
    """Mark one of the customer's notifications as read.

    Raises:
        NotFoundError: No such notification for this customer
    """
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == customer_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")

    if not notification.read:
        try:
            notification.read = True
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("[NOTIFY] Failed to mark notification %s read", notification_id)
            raise PersistenceError("Could not update notification") from exc
        db.refresh(notification)

    return notification
