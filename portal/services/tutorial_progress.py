"""Onboarding video progress.

WHAT:
    Lists the onboarding tutorial videos with a per-customer "watched" flag
    and records when a customer finishes one.

REFERENCES:
    - portal/routers/onboarding.py (GET /onboarding/tutorials,
      POST /onboarding/tutorials/{id}/complete)
"""

import logging
from datetime import datetime
from typing import List, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portal.errors import NotFoundError, PersistenceError
from portal.models import Tutorial, TutorialProgress
from portal.services.progress_store import load_customer

logger = logging.getLogger(__name__)


def list_onboarding_tutorials(db: Session, customer_id: UUID) -> List[Tuple[Tutorial, bool]]:
    """Onboarding tutorials in display order, each with its completed flag."""
    load_customer(db, customer_id)
    tutorials = (
        db.query(Tutorial)
        .filter(Tutorial.is_onboarding.is_(True))
        .order_by(Tutorial.order.asc())
        .all()
    )
    watched = {
        row.tutorial_id
        for row in db.query(TutorialProgress).filter(
            TutorialProgress.user_id == customer_id,
            TutorialProgress.completed.is_(True),
        )
    }
    return [(tutorial, tutorial.id in watched) for tutorial in tutorials]


def mark_tutorial_completed(db: Session, customer_id: UUID, tutorial_id: UUID) -> TutorialProgress:
    """Record that the customer watched a tutorial. Repeat calls are no-ops.

    Raises:
        NotFoundError: Unknown customer or tutorial
    """
    load_customer(db, customer_id)
    if db.query(Tutorial.id).filter(Tutorial.id == tutorial_id).first() is None:
        raise NotFoundError(f"Tutorial {tutorial_id} not found")

    progress = (
        db.query(TutorialProgress)
        .filter(
            TutorialProgress.user_id == customer_id,
            TutorialProgress.tutorial_id == tutorial_id,
        )
        .first()
    )
    if progress and progress.completed:
        return progress

    try:
        if progress is None:
            progress = TutorialProgress(user_id=customer_id, tutorial_id=tutorial_id)
            db.add(progress)
        progress.completed = True
        progress.completed_at = datetime.utcnow()
        db.commit()
    except IntegrityError:
        # A concurrent request recorded it first
        db.rollback()
        return (
            db.query(TutorialProgress)
            .filter(
                TutorialProgress.user_id == customer_id,
                TutorialProgress.tutorial_id == tutorial_id,
            )
            .one()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[TUTORIALS] Failed to record progress for %s", customer_id)
        raise PersistenceError("Could not record tutorial progress") from exc

    db.refresh(progress)
    logger.info("[TUTORIALS] Customer %s completed tutorial %s", customer_id, tutorial_id)
    return progress
