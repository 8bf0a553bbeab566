"""Customer onboarding progress store.

WHAT:
    Reads and updates a customer's current phase, completed phases and
    percent-complete on the `users` row.

WHY:
    - Phase transitions come from several places (checklist submission,
      admin advancement); they all funnel through `apply_advance` so the
      invariants hold regardless of caller.
    - Invariants: `completed_phases` never shrinks and never holds
      duplicates; `progress` never regresses; `current_phase` never moves
      backwards.

CONCURRENCY:
    Updates lock the customer row (`SELECT ... FOR UPDATE`) and the mapper
    carries a `version` column, so a write based on a stale read raises
    StaleDataError instead of silently winning. Stale writes are retried.

REFERENCES:
    - portal/services/phase_model.py (percent / ordinal lookups)
    - portal/services/checklist_intake.py (completes the onboarding phase)
    - portal/routers/onboarding.py, portal/routers/admin.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from portal.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from portal.models import RoleEnum, User
from portal.services.phase_model import (
    FINAL_PHASE,
    next_phase,
    normalize_phase,
    ordinal_for,
    percent_for,
    phases_before,
    step_flags,
)

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 3


@dataclass
class ProgressView:
    """Read-only projection of a customer's onboarding state."""

    customer_id: UUID
    current_phase: str
    completed_phases: List[str]
    progress: int
    onboarding_completed: bool
    steps: List[dict] = field(default_factory=list)


def to_view(user: User) -> ProgressView:
    return ProgressView(
        customer_id=user.id,
        current_phase=user.current_phase,
        completed_phases=list(user.completed_phases or []),
        progress=user.progress or 0,
        onboarding_completed=bool(user.onboarding_completed),
        steps=step_flags(user.current_phase),
    )


def load_customer(db: Session, customer_id: UUID, *, for_update: bool = False) -> User:
    """Fetch a customer row, optionally locking it for a read-modify-write.

    Raises:
        NotFoundError: No customer with this id
    """
    query = db.query(User).filter(User.id == customer_id, User.role == RoleEnum.customer)
    if for_update:
        query = query.with_for_update().populate_existing()
    customer = query.first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def get_progress(db: Session, customer_id: UUID) -> ProgressView:
    return to_view(load_customer(db, customer_id))


# =============================================================================
# IN-TRANSACTION MUTATORS (caller holds the row lock and commits)
# =============================================================================


def apply_advance(customer: User, target_phase: str) -> bool:
    """Move `customer` forward to `target_phase` on an already-locked row.

    Every phase before the target is recorded as completed; the current phase
    and progress only ever move forward.

    Returns:
        True if any column changed
    """
    existing = list(dict.fromkeys(customer.completed_phases or []))
    completed = list(existing)
    for name in phases_before(target_phase):
        if name not in completed:
            completed.append(name)

    changed = False
    if completed != list(customer.completed_phases or []):
        customer.completed_phases = completed
        changed = True

    if ordinal_for(target_phase) > ordinal_for(customer.current_phase):
        customer.current_phase = target_phase
        changed = True
    elif normalize_phase(customer.current_phase) is None:
        # Legacy / unknown label counts as the first phase
        customer.current_phase = target_phase
        changed = True

    new_progress = max(customer.progress or 0, percent_for(target_phase))
    if new_progress != customer.progress:
        customer.progress = new_progress
        changed = True

    return changed


def apply_completion(customer: User, phase: str) -> bool:
    """Mark `phase` complete on a locked row and move to its successor.

    Completing the final phase is the one terminal transition that pins
    progress to 100.
    """
    successor = next_phase(phase)
    if successor is not None:
        return apply_advance(customer, successor)

    changed = apply_advance(customer, phase)
    completed = list(customer.completed_phases or [])
    if phase not in completed:
        customer.completed_phases = completed + [phase]
        changed = True
    if customer.progress != 100:
        customer.progress = 100
        changed = True
    return changed


# =============================================================================
# TRANSACTIONAL OPERATIONS
# =============================================================================


def _locked_update(
    db: Session,
    customer_id: UUID,
    mutate: Callable[[User], bool],
    action: str,
) -> ProgressView:
    for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
        try:
            customer = load_customer(db, customer_id, for_update=True)
            changed = mutate(customer)
            db.commit()
            logger.info(
                "[PROGRESS] %s for customer %s: phase=%s progress=%s changed=%s",
                action,
                customer_id,
                customer.current_phase,
                customer.progress,
                changed,
            )
            return to_view(customer)
        except StaleDataError:
            db.rollback()
            logger.warning(
                "[PROGRESS] Concurrent update on customer %s during %s (attempt %d/%d)",
                customer_id,
                action,
                attempt,
                MAX_UPDATE_ATTEMPTS,
            )
        except NotFoundError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("[PROGRESS] Failed to %s for customer %s", action, customer_id)
            raise PersistenceError("Could not update onboarding progress") from exc

    raise ConflictError("Progress was updated concurrently, please retry")


def advance_phase(db: Session, customer_id: UUID, new_phase: str) -> ProgressView:
    """Advance a customer to `new_phase`.

    Raises:
        ValidationError: Unknown phase name
        NotFoundError: Unknown customer
        PersistenceError: Storage failure
    """
    target = normalize_phase(new_phase)
    if target is None:
        raise ValidationError(f"Unknown phase '{new_phase}'", fields=["phase"])
    return _locked_update(
        db,
        customer_id,
        lambda customer: apply_advance(customer, target),
        f"advance to {target}",
    )


def complete_phase(db: Session, customer_id: UUID, phase: str) -> ProgressView:
    """Mark `phase` complete and move the customer to the next one."""
    canonical = normalize_phase(phase)
    if canonical is None:
        raise ValidationError(f"Unknown phase '{phase}'", fields=["phase"])
    return _locked_update(
        db,
        customer_id,
        lambda customer: apply_completion(customer, canonical),
        f"complete {canonical}" + (" (final)" if canonical == FINAL_PHASE else ""),
    )


def list_customers(db: Session) -> List[User]:
    """All customers, newest first (admin tracking)."""
    return (
        db.query(User)
        .filter(User.role == RoleEnum.customer)
        .order_by(User.created_at.desc())
        .all()
    )
