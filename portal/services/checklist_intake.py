"""Onboarding checklist intake.

WHAT:
    Validates and stores the one-time business-information checklist, then
    completes the "onboarding" phase for the customer.

WHY:
    The checklist is the gate between onboarding and landing page work.
    Storing it and advancing the phase must happen together: a stored
    checklist with an un-advanced customer (or the reverse) would leave the
    admin tracking view inconsistent.

POLICY:
    A customer submits the checklist exactly once. A second submission is
    rejected with ConflictError (backed by a unique constraint on user_id).

REFERENCES:
    - portal/schemas.py (ChecklistPayload and nested structs)
    - portal/services/progress_store.py (apply_completion)
    - portal/routers/onboarding.py (POST /onboarding/checklist)
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from portal.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from portal.models import ChecklistSubmission
from portal.schemas import ChecklistPayload
from portal.services.progress_store import MAX_UPDATE_ATTEMPTS, apply_completion, load_customer

logger = logging.getLogger(__name__)


def _is_blank(value: Optional[str]) -> bool:
    return not isinstance(value, str) or not value.strip()


def _clean_competitors(payload: ChecklistPayload) -> List[str]:
    return [c.strip() for c in payload.market_research.competitors if not _is_blank(c)]


# (dotted path, is-missing check) in the order the form shows them
_REQUIRED_FIELDS = (
    ("payment_option", lambda p: _is_blank(p.payment_option)),
    ("tax_id", lambda p: _is_blank(p.tax_id)),
    ("domain", lambda p: _is_blank(p.domain)),
    ("target_audience", lambda p: _is_blank(p.target_audience)),
    ("company_info", lambda p: _is_blank(p.company_info)),
    ("web_design.color_scheme", lambda p: _is_blank(p.web_design.color_scheme)),
    ("market_research.competitors", lambda p: not _clean_competitors(p)),
    ("legal_info.address", lambda p: _is_blank(p.legal_info.address)),
    ("legal_info.impressum", lambda p: _is_blank(p.legal_info.impressum)),
    ("legal_info.privacy", lambda p: _is_blank(p.legal_info.privacy)),
)


def validate_checklist(payload: ChecklistPayload) -> List[str]:
    """Return every missing/invalid required field as a dotted path."""
    return [path for path, is_missing in _REQUIRED_FIELDS if is_missing(payload)]


def _build_submission(customer_id: UUID, checklist: ChecklistPayload) -> ChecklistSubmission:
    return ChecklistSubmission(
        user_id=customer_id,
        payment_option=checklist.payment_option.strip(),
        tax_id=checklist.tax_id.strip(),
        domain=checklist.domain.strip(),
        target_audience=checklist.target_audience.strip(),
        company_info=checklist.company_info.strip(),
        web_design=checklist.web_design.model_dump(),
        market_research={
            **checklist.market_research.model_dump(),
            "competitors": _clean_competitors(checklist),
        },
        legal_info=checklist.legal_info.model_dump(),
        target_group=checklist.target_group.model_dump(),
        ideal_customer_profile=checklist.ideal_customer_profile,
        qualification_questions=checklist.qualification_questions,
    )


def submit(db: Session, customer_id: UUID, checklist: ChecklistPayload) -> ChecklistSubmission:
    """Store the checklist and complete the onboarding phase atomically.

    A concurrent progress update (stale `version`) is retried; only a real
    earlier submission counts as a duplicate.

    Raises:
        ValidationError: One or more required fields are blank (all listed)
        NotFoundError: Unknown customer
        ConflictError: The customer already submitted a checklist, or the
            customer row kept changing underneath every attempt
        PersistenceError: Storage failure (nothing is written)
    """
    missing = validate_checklist(checklist)
    if missing:
        logger.info("[CHECKLIST] Rejected submission for %s, missing=%s", customer_id, missing)
        raise ValidationError("Checklist is incomplete", fields=missing)

    for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
        try:
            customer = load_customer(db, customer_id, for_update=True)

            already_submitted = (
                db.query(ChecklistSubmission.id)
                .filter(ChecklistSubmission.user_id == customer_id)
                .first()
            )
            if already_submitted:
                raise ConflictError("Checklist was already submitted")

            submission = _build_submission(customer.id, checklist)
            db.add(submission)

            apply_completion(customer, "onboarding")
            customer.onboarding_completed = True

            db.commit()
        except (ConflictError, NotFoundError):
            db.rollback()
            raise
        except StaleDataError:
            db.rollback()
            logger.warning(
                "[CHECKLIST] Concurrent progress update for %s (attempt %d/%d)",
                customer_id,
                attempt,
                MAX_UPDATE_ATTEMPTS,
            )
            continue
        except IntegrityError as exc:
            # Lost a race against a concurrent submission for the same customer
            db.rollback()
            logger.warning("[CHECKLIST] Concurrent submission for %s: %s", customer_id, exc)
            raise ConflictError("Checklist was already submitted") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("[CHECKLIST] Failed to store checklist for %s", customer_id)
            raise PersistenceError("Could not store checklist") from exc

        db.refresh(submission)
        logger.info(
            "[CHECKLIST] Stored checklist for %s, phase=%s progress=%s",
            customer_id,
            customer.current_phase,
            customer.progress,
        )
        return submission

    raise ConflictError("Progress was updated concurrently, please retry")


def get_checklist(db: Session, customer_id: UUID) -> ChecklistSubmission:
    """Return the customer's checklist.

    Raises:
        NotFoundError: The customer has not submitted one yet
    """
    submission = (
        db.query(ChecklistSubmission)
        .filter(ChecklistSubmission.user_id == customer_id)
        .first()
    )
    if submission is None:
        raise NotFoundError(f"No checklist submitted for customer {customer_id}")
    return submission
