"""
Onboarding Router
=================

WHAT: Customer-facing onboarding flow: progress, checklist, intro videos.
WHY: New customers must watch the intro videos and submit the business
     checklist before the landing page phase can start.

ENDPOINTS:
    GET  /onboarding/progress                  - Current phase, steps, percent
    POST /onboarding/checklist                 - Submit the business checklist (once)
    GET  /onboarding/checklist                 - Read back the submitted checklist
    GET  /onboarding/tutorials                 - Onboarding videos with watched flags
    POST /onboarding/tutorials/{id}/complete   - Mark a video as watched

REFERENCES:
    - portal/services/progress_store.py
    - portal/services/checklist_intake.py
    - portal/services/tutorial_progress.py
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.deps import get_current_customer
from portal.models import User
from portal.schemas import (
    ChecklistOut,
    ChecklistPayload,
    ProgressResponse,
    SuccessResponse,
    TutorialOut,
)
from portal.services import checklist_intake, progress_store
from portal.services.tutorial_progress import list_onboarding_tutorials, mark_tutorial_completed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["Onboarding"])


# =============================================================================
# PROGRESS
# =============================================================================


@router.get(
    "/progress",
    response_model=ProgressResponse,
    summary="Get onboarding progress",
)
def get_progress(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> ProgressResponse:
    """
    Current phase, completed phases, percent and per-step reached flags.

    WHY: Dashboard progress bar and the phase stepper read this.
    """
    view = progress_store.get_progress(db, current_user.id)
    return ProgressResponse.model_validate(view)


# =============================================================================
# CHECKLIST
# =============================================================================


@router.post(
    "/checklist",
    response_model=ProgressResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit onboarding checklist",
)
def submit_checklist(
    payload: ChecklistPayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> ProgressResponse:
    """
    Store the business checklist and complete the onboarding phase.

    Errors:
        400 with `fields` listing every missing field
        409 if the checklist was already submitted

    Returns:
        Updated progress (current phase moves to "landingpage")
    """
    logger.info(f"[ONBOARDING] Checklist submitted by customer {current_user.id}")
    checklist_intake.submit(db, current_user.id, payload)
    return ProgressResponse.model_validate(progress_store.get_progress(db, current_user.id))


@router.get(
    "/checklist",
    response_model=ChecklistOut,
    summary="Get submitted checklist",
)
def get_checklist(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> ChecklistOut:
    return ChecklistOut.model_validate(checklist_intake.get_checklist(db, current_user.id))


# =============================================================================
# ONBOARDING VIDEOS
# =============================================================================


@router.get(
    "/tutorials",
    response_model=List[TutorialOut],
    summary="List onboarding videos",
)
def get_tutorials(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> List[TutorialOut]:
    return [
        TutorialOut(
            id=tutorial.id,
            title=tutorial.title,
            description=tutorial.description,
            video_url=tutorial.video_url,
            thumbnail_url=tutorial.thumbnail_url,
            category=tutorial.category,
            order=tutorial.order,
            completed=completed,
        )
        for tutorial, completed in list_onboarding_tutorials(db, current_user.id)
    ]


@router.post(
    "/tutorials/{tutorial_id}/complete",
    response_model=SuccessResponse,
    summary="Mark onboarding video as watched",
)
def complete_tutorial(
    tutorial_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> SuccessResponse:
    mark_tutorial_completed(db, current_user.id, tutorial_id)
    return SuccessResponse(success=True)
