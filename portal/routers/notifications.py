"""Notification endpoints.

ENDPOINTS:
    GET  /notifications              - Newest 50 notifications
    POST /notifications/{id}/read    - Mark one as read
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.deps import get_current_customer
from portal.models import User
from portal.schemas import NotificationOut
from portal.services.notification_deriver import list_notifications, mark_read

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationOut])
def get_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> List[NotificationOut]:
    return [NotificationOut.model_validate(n) for n in list_notifications(db, current_user.id)]


@router.post("/{notification_id}/read", response_model=NotificationOut)
def read_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> NotificationOut:
    return NotificationOut.model_validate(mark_read(db, current_user.id, notification_id))
