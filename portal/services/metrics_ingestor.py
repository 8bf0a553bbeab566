"""Meta metrics ingestion.

WHAT:
    Pulls 30 days of daily account insights from Meta for one ad account,
    aggregates them into a single snapshot (leads, spend, clicks,
    impressions, reach, cpc, cpm), stores it, and derives a "new leads"
    notification for that snapshot. A fresh Meta connection gets an initial
    snapshot of its first ad account.

WHY:
    The customer dashboard shows these totals and their trend over time.

AGGREGATION POLICY:
    - impressions / clicks / reach / spend: summed over all daily records.
      A malformed value counts as 0; one bad record never fails the fetch.
    - leads: sum of `value` over actions with action_type == "lead".
    - cpc / cpm: recomputed from the window totals (spend / clicks,
      spend / impressions * 1000), i.e. a spend-weighted average over the
      window, not the last day's value.
    - Snapshots are append-only: every fetch inserts a new row.

CONCURRENCY:
    The Meta call runs with no transaction or row lock open. Only the
    snapshot insert locks the customer row. A client disconnect does not
    cancel the request thread, so a fetch that reached Meta still stores
    its snapshot (best effort completion, not tied to the HTTP connection).

REFERENCES:
    - portal/services/meta_ads_client.py (Graph API access)
    - portal/services/notification_deriver.py (lead notifications)
    - portal/routers/meta.py (POST /meta/ad-accounts/{id}/fetch)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Iterable, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.deps import get_settings
from portal.errors import (
    ExternalApiError,
    ExternalAuthError,
    NetworkError,
    PersistenceError,
    PortalError,
    ValidationError,
)
from portal.models import MetricsSnapshot
from portal.services.meta_ads_client import (
    MetaAdsAuthenticationError,
    MetaAdsClient,
    MetaAdsClientError,
    MetaAdsNetworkError,
    MetaAdsPermissionError,
    MetaAdsRateLimitError,
    MetaAdsValidationError,
    normalize_ad_account_id,
)
from portal.services.notification_deriver import derive_for_snapshot
from portal.services.progress_store import load_customer
from portal.services.token_service import get_meta_access_token

logger = logging.getLogger(__name__)

LEAD_ACTION_TYPE = "lead"
INSIGHTS_DATE_PRESET = "last_30d"

_CENT = Decimal("0.01")
_FOUR_PLACES = Decimal("0.0001")


@dataclass
class AggregatedMetrics:
    leads: int = 0
    spend: Decimal = Decimal("0")
    clicks: int = 0
    impressions: int = 0
    reach: int = 0
    cpc: Decimal = Decimal("0")
    cpm: Decimal = Decimal("0")
    records: int = 0


# =============================================================================
# NUMERIC COERCION
# =============================================================================


def _to_decimal(value: Any) -> Decimal:
    """Meta sends numbers as strings; anything unparsable counts as 0."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.debug("[METRICS] Treating non-numeric value %r as 0", value)
        return Decimal("0")
    if not number.is_finite():
        return Decimal("0")
    return number


def _to_int(value: Any) -> int:
    return int(_to_decimal(value))


# =============================================================================
# AGGREGATION
# =============================================================================


def count_leads(actions: Any) -> int:
    """Sum the `value` of every lead action in one record's actions list."""
    if not isinstance(actions, (list, tuple)):
        return 0
    total = 0
    for action in actions:
        if isinstance(action, Mapping) and action.get("action_type") == LEAD_ACTION_TYPE:
            total += _to_int(action.get("value"))
    return total


def aggregate_insights(records: Iterable[Any]) -> AggregatedMetrics:
    """Aggregate daily insight records into window totals.

    Non-dict records are skipped; malformed fields inside a record count as 0.
    """
    totals = AggregatedMetrics()

    for record in records:
        if not isinstance(record, Mapping):
            logger.warning("[METRICS] Skipping malformed insight record: %r", record)
            continue
        totals.records += 1
        totals.impressions += _to_int(record.get("impressions"))
        totals.clicks += _to_int(record.get("clicks"))
        totals.reach += _to_int(record.get("reach"))
        totals.spend += _to_decimal(record.get("spend"))
        totals.leads += count_leads(record.get("actions"))

    totals.spend = totals.spend.quantize(_CENT, rounding=ROUND_HALF_UP)
    if totals.clicks:
        totals.cpc = (totals.spend / totals.clicks).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)
    if totals.impressions:
        totals.cpm = (totals.spend * 1000 / totals.impressions).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP)

    return totals


# =============================================================================
# FETCH + STORE
# =============================================================================


def _default_client_factory(access_token: str) -> MetaAdsClient:
    settings = get_settings()
    return MetaAdsClient(
        access_token=access_token,
        app_id=settings.META_APP_ID,
        app_secret=settings.META_APP_SECRET,
        api_version=settings.META_API_VERSION,
        timeout=settings.META_REQUEST_TIMEOUT_SECONDS,
    )


def _call_meta(call: Callable[[], Any], customer_id: UUID) -> Any:
    """Run a Meta client call, translating client errors to domain errors."""
    try:
        return call()
    except (MetaAdsAuthenticationError, MetaAdsPermissionError) as exc:
        logger.warning("[METRICS] Meta rejected credential for %s: %s", customer_id, exc)
        raise ExternalAuthError("Meta rejected the stored credential, please reconnect your account") from exc
    except MetaAdsNetworkError as exc:
        logger.warning("[METRICS] Meta unreachable for %s: %s", customer_id, exc)
        raise NetworkError("Meta is not reachable right now, please try again later") from exc
    except MetaAdsValidationError as exc:
        raise ExternalApiError(f"Meta rejected the request: {exc}") from exc
    except MetaAdsRateLimitError as exc:
        logger.warning("[METRICS] Meta call budget exhausted for %s: %s", customer_id, exc)
        raise ExternalApiError("Too many Meta requests, please try again later") from exc
    except MetaAdsClientError as exc:
        logger.error("[METRICS] Meta API error for %s: %s", customer_id, exc)
        raise ExternalApiError("Meta returned an error, please try again later") from exc


def list_ad_accounts(
    db: Session,
    customer_id: UUID,
    *,
    client_factory: Optional[Callable[[str], Any]] = None,
) -> List[dict]:
    """List the ad accounts visible to the customer's stored Meta credential."""
    load_customer(db, customer_id)
    access_token = get_meta_access_token(db, customer_id)
    db.rollback()  # end the read transaction before going to the network

    client = (client_factory or _default_client_factory)(access_token)
    return _call_meta(client.list_ad_accounts, customer_id)


def fetch_and_store(
    db: Session,
    customer_id: UUID,
    ad_account_id: str,
    *,
    client_factory: Optional[Callable[[str], Any]] = None,
    captured_at: Optional[datetime] = None,
) -> MetricsSnapshot:
    """Fetch 30 days of insights for one ad account and store a snapshot.

    Raises:
        NotFoundError: Unknown customer
        ValidationError: Empty ad account id
        AuthError: No stored Meta credential
        ExternalAuthError: Meta rejected the credential
        NetworkError: Meta unreachable / timed out
        ExternalApiError: Any other Meta failure
        PersistenceError: Snapshot could not be stored
    """
    try:
        account_id = normalize_ad_account_id(ad_account_id)
    except MetaAdsValidationError as exc:
        raise ValidationError(str(exc), fields=["ad_account_id"]) from exc

    load_customer(db, customer_id)
    access_token = get_meta_access_token(db, customer_id)
    db.rollback()  # no transaction / lock held across the network call

    client = (client_factory or _default_client_factory)(access_token)
    records = _call_meta(
        lambda: client.get_account_insights(account_id, date_preset=INSIGHTS_DATE_PRESET),
        customer_id,
    )
    totals = aggregate_insights(records)

    logger.info(
        "[METRICS] Aggregated %d records for %s/%s: leads=%d spend=%s clicks=%d impressions=%d",
        totals.records,
        customer_id,
        account_id,
        totals.leads,
        totals.spend,
        totals.clicks,
        totals.impressions,
    )

    try:
        # Serialize snapshot writes per customer so the "previous" snapshot
        # seen by the notification deriver is well defined.
        load_customer(db, customer_id, for_update=True)
        snapshot = MetricsSnapshot(
            user_id=customer_id,
            ad_account_id=account_id,
            leads=totals.leads,
            ad_spend=totals.spend,
            clicks=totals.clicks,
            impressions=totals.impressions,
            reach=totals.reach,
            cpc=totals.cpc,
            cpm=totals.cpm,
            date=captured_at or datetime.utcnow(),
        )
        db.add(snapshot)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[METRICS] Failed to store snapshot for %s", customer_id)
        raise PersistenceError("Could not store metrics snapshot") from exc

    db.refresh(snapshot)

    # Notification is best effort: the snapshot stays even if this fails
    try:
        derive_for_snapshot(db, snapshot)
    except (PersistenceError, SQLAlchemyError):
        db.rollback()
        logger.warning("[METRICS] Lead notification skipped for snapshot %s", snapshot.id)

    return snapshot


def sync_first_account(
    db: Session,
    customer_id: UUID,
    *,
    client_factory: Optional[Callable[[str], Any]] = None,
) -> Optional[MetricsSnapshot]:
    """Store an initial snapshot for the first ad account of a fresh connection.

    Best effort: any failure is logged and None is returned, the stored
    credential is kept either way.
    """
    try:
        accounts = list_ad_accounts(db, customer_id, client_factory=client_factory)
        if not accounts:
            logger.info("[METRICS] No ad accounts visible for customer %s", customer_id)
            return None
        return fetch_and_store(db, customer_id, accounts[0]["id"], client_factory=client_factory)
    except PortalError as exc:
        logger.warning("[METRICS] Initial sync failed for customer %s: %s", customer_id, exc)
        return None


def list_snapshots(db: Session, customer_id: UUID, limit: int = 30) -> List[MetricsSnapshot]:
    """Newest `limit` snapshots, returned oldest first for trend charts."""
    load_customer(db, customer_id)
    newest = (
        db.query(MetricsSnapshot)
        .filter(MetricsSnapshot.user_id == customer_id)
        .order_by(MetricsSnapshot.date.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(newest))
