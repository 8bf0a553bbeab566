"""Meta Ads connection and metrics endpoints.

WHAT:
    Thin HTTP wrappers for the Meta token, ad account and metrics services.

WHY:
    - Routers handle auth + request parsing only.
    - Business logic lives in portal/services so scripts and tests reuse it.

ENDPOINTS:
    POST /meta/connect                         - Store the Meta token, sync the first ad account
    GET  /meta/ad-accounts                     - Ad accounts visible to the token
    POST /meta/ad-accounts/{ad_account_id}/fetch - Fetch 30 days of insights, store a snapshot
    GET  /metrics                              - Stored snapshots (oldest first)

REFERENCES:
    - portal/services/token_service.py
    - portal/services/metrics_ingestor.py
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.deps import get_current_customer
from portal.models import User
from portal.schemas import (
    AdAccountOut,
    MetaConnectRequest,
    MetricsSnapshotOut,
    SuccessResponse,
)
from portal.services import metrics_ingestor
from portal.services.token_service import store_meta_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Meta"])


@router.post("/meta/connect", response_model=SuccessResponse)
def connect_meta(
    request: MetaConnectRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> SuccessResponse:
    """Store (encrypted) the Meta access token obtained by the frontend SDK login.

    The first ad account is synced right away so the dashboard is not empty;
    a failed sync does not fail the connection.
    """
    logger.info("[META] Connect requested by customer %s", current_user.id)
    store_meta_token(db, current_user.id, request.access_token)

    snapshot = metrics_ingestor.sync_first_account(db, current_user.id)
    if snapshot is None:
        return SuccessResponse(success=True, detail="Meta account connected")
    return SuccessResponse(
        success=True,
        detail=f"Meta account connected, metrics stored for {snapshot.ad_account_id}",
    )


@router.get("/meta/ad-accounts", response_model=List[AdAccountOut])
def get_ad_accounts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> List[AdAccountOut]:
    accounts = metrics_ingestor.list_ad_accounts(db, current_user.id)
    return [
        AdAccountOut(
            id=account["id"],
            account_id=account.get("account_id"),
            name=account.get("name"),
            account_status=account.get("account_status"),
            currency=account.get("currency"),
        )
        for account in accounts
    ]


@router.post(
    "/meta/ad-accounts/{ad_account_id}/fetch",
    response_model=MetricsSnapshotOut,
    status_code=status.HTTP_201_CREATED,
)
def fetch_metrics(
    ad_account_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> MetricsSnapshotOut:
    """Fetch insights from Meta and store a snapshot (sync: runs in the threadpool)."""
    logger.info(
        "[META] Metrics fetch requested: customer=%s account=%s",
        current_user.id,
        ad_account_id,
    )
    snapshot = metrics_ingestor.fetch_and_store(db, current_user.id, ad_account_id)
    return MetricsSnapshotOut.model_validate(snapshot)


@router.get("/metrics", response_model=List[MetricsSnapshotOut])
def get_metrics(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_customer),
) -> List[MetricsSnapshotOut]:
    return [
        MetricsSnapshotOut.model_validate(snapshot)
        for snapshot in metrics_ingestor.list_snapshots(db, current_user.id)
    ]
