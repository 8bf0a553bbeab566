"""Admin endpoints for customer tracking and management.

WHAT: Staff-facing view of every customer's onboarding state, plus manual
      phase advancement and account approval.
WHY: The team moves customers through landing page, ads, WhatsApp and webinar
     setup by hand; the portal only records where each customer stands.

SECURITY: Requires an authenticated admin (role=admin) via the session cookie.
"""

import logging
from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.deps import get_current_admin
from portal.errors import PersistenceError
from portal.models import User
from portal.schemas import (
    ChecklistOut,
    CustomerTrackingOut,
    PhaseAdvanceRequest,
    ProgressResponse,
    SuccessResponse,
)
from portal.services import checklist_intake, progress_store
from portal.services.email_service import EmailService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
)


def _tracking_row(customer: User) -> CustomerTrackingOut:
    view = progress_store.to_view(customer)
    return CustomerTrackingOut(
        **ProgressResponse.model_validate(view).model_dump(),
        email=customer.email,
        first_name=customer.first_name,
        last_name=customer.last_name,
        is_approved=bool(customer.is_approved),
        last_active=customer.last_active,
    )


def _send_approval_email(email: str, first_name: str) -> None:
    result = EmailService.from_settings().send_approval_email(email, first_name)
    if not result.success:
        logger.warning(f"[ADMIN] Approval email to {email} failed: {result.error}")


@router.get(
    "/customers/tracking",
    response_model=List[CustomerTrackingOut],
    summary="Onboarding status of every customer",
)
def customer_tracking(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> List[CustomerTrackingOut]:
    return [_tracking_row(customer) for customer in progress_store.list_customers(db)]


@router.get("/customers/{customer_id}/progress", response_model=ProgressResponse)
def customer_progress(
    customer_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> ProgressResponse:
    return ProgressResponse.model_validate(progress_store.get_progress(db, customer_id))


@router.get("/customers/{customer_id}/checklist", response_model=ChecklistOut)
def customer_checklist(
    customer_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> ChecklistOut:
    return ChecklistOut.model_validate(checklist_intake.get_checklist(db, customer_id))


@router.post(
    "/customers/{customer_id}/phase",
    response_model=ProgressResponse,
    summary="Advance a customer to a phase",
    description="""
    Moves the customer forward to the given phase. Every earlier phase is
    marked completed; the current phase and percent never move backwards.
    """,
)
def advance_customer_phase(
    customer_id: UUID,
    payload: PhaseAdvanceRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> ProgressResponse:
    logger.info(f"[ADMIN] {admin.email} advancing customer {customer_id} to {payload.phase}")
    view = progress_store.advance_phase(db, customer_id, payload.phase)
    return ProgressResponse.model_validate(view)


@router.post("/customers/{customer_id}/approve", response_model=SuccessResponse)
def approve_customer(
    customer_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> SuccessResponse:
    """Approve a registered customer and email them a login link.

    Approving an already approved customer is a no-op (no second email).
    """
    customer = progress_store.load_customer(db, customer_id, for_update=True)
    if customer.is_approved:
        db.rollback()
        return SuccessResponse(success=True, detail="Customer already approved")

    try:
        customer.is_approved = True
        customer.approved_at = datetime.utcnow()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(f"[ADMIN] Failed to approve customer {customer_id}")
        raise PersistenceError("Could not approve customer") from exc

    logger.info(f"[ADMIN] {admin.email} approved customer {customer_id}")
    background_tasks.add_task(_send_approval_email, customer.email, customer.first_name)
    return SuccessResponse(success=True, detail="Customer approved")
