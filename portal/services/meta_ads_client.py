"""Meta Ads API Client Service.

WHAT:
    Wrapper for the Facebook Business SDK providing rate-limited access to the
    Meta Marketing API: listing a credential's ad accounts and fetching daily
    account-level insights.

WHY:
    - Centralized Meta API interaction (single source of truth)
    - Rate limiting enforcement (200 calls/hour per access token)
    - Every call carries a timeout; a hung Graph API request must not pin a
      worker thread forever
    - Errors are translated into a small exception hierarchy so the metrics
      ingestor can tell "reconnect your account" from "try again later"

WHERE USED:
    - portal/services/metrics_ingestor.py (fetch_and_store)
    - portal/routers/meta.py (ad account listing)

DEPENDENCIES:
    - facebook_business SDK
    - requests (transport used by the SDK; timeouts surface as its exceptions)

RATE LIMITS:
    - 200 API calls per hour per access token
    - Implements decorator: @rate_limit(calls_per_hour=200); an exhausted
      budget raises MetaAdsRateLimitError instead of blocking the request

REFERENCES:
    - https://developers.facebook.com/docs/marketing-api/insights
"""

import hashlib
import logging
import threading
from collections import deque
from functools import wraps
from time import time
from typing import Any, Deque, Dict, List, Optional

import requests
from facebook_business.adobjects.adaccount import AdAccount
from facebook_business.adobjects.adsinsights import AdsInsights
from facebook_business.adobjects.user import User as FacebookUser
from facebook_business.api import FacebookAdsApi, FacebookSession
from facebook_business.exceptions import FacebookRequestError

logger = logging.getLogger(__name__)

# Graph API error codes that mean the token itself is unusable
# 190: invalid / expired OAuth token, 102: session key invalid
_AUTH_ERROR_CODES = {102, 190}

# Permission failures Meta reports with HTTP 400
# 10: permission denied, 200-299: missing permission (294: ads_management)
_PERMISSION_ERROR_CODES = {10} | set(range(200, 300))

_RATE_LIMIT_WINDOW_SECONDS = 3600

# Call timestamps per access token hash, shared by every decorated method
_rate_limit_call_times: Dict[str, Deque[float]] = {}
_rate_limit_lock = threading.Lock()


def _rate_limit_key(client: Any, func) -> str:
    token = getattr(client, "access_token", None)
    if not token:
        return func.__qualname__
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _evict_expired(now: float) -> None:
    """Drop expired timestamps and forget tokens with no recent calls (lock held)."""
    cutoff = now - _RATE_LIMIT_WINDOW_SECONDS
    for key in list(_rate_limit_call_times):
        call_times = _rate_limit_call_times[key]
        while call_times and call_times[0] <= cutoff:
            call_times.popleft()
        if not call_times:
            del _rate_limit_call_times[key]


def rate_limit(calls_per_hour: int):
    """Decorator to enforce rate limiting using a sliding window.

    WHAT:
        Tracks call timestamps per access token (the decorated method's
        `self.access_token`, stored only as a SHA-256 hash) and raises
        MetaAdsRateLimitError once the hourly budget is used up.

    WHY:
        Meta throttles per token across endpoints; listing ad accounts and
        fetching insights draw from the same budget. Calls run in request
        threads, so an exhausted budget fails fast instead of sleeping.

    Args:
        calls_per_hour: Maximum number of calls allowed per hour
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            key = _rate_limit_key(args[0] if args else None, func)

            with _rate_limit_lock:
                now = time()
                _evict_expired(now)
                call_times = _rate_limit_call_times.setdefault(key, deque())

                if len(call_times) >= calls_per_hour:
                    retry_after = _RATE_LIMIT_WINDOW_SECONDS - (now - call_times[0])
                    logger.warning(
                        f"[META_CLIENT] Rate limit reached ({calls_per_hour} calls/hour). "
                        f"Retry in {retry_after:.0f}s"
                    )
                    raise MetaAdsRateLimitError(
                        f"Meta API budget of {calls_per_hour} calls/hour used up, "
                        f"retry in {retry_after:.0f}s"
                    )

                call_times.append(now)

            return func(*args, **kwargs)
        return wrapper
    return decorator


class MetaAdsClientError(Exception):
    """Base exception for Meta Ads Client errors."""
    pass


class MetaAdsAuthenticationError(MetaAdsClientError):
    """Raised when the token is invalid or expired (401 / OAuth error 190)."""
    pass


class MetaAdsPermissionError(MetaAdsClientError):
    """Raised when permissions are insufficient (403)."""
    pass


class MetaAdsValidationError(MetaAdsClientError):
    """Raised when request is malformed (400)."""
    pass


class MetaAdsNetworkError(MetaAdsClientError):
    """Raised when Meta cannot be reached or the request times out."""
    pass


class MetaAdsRateLimitError(MetaAdsClientError):
    """Raised when the hourly call budget is used up (local limiter or HTTP 429)."""
    pass


def normalize_ad_account_id(ad_account_id: str) -> str:
    """Return the ad account id with Meta's `act_` prefix."""
    ad_account_id = (ad_account_id or "").strip()
    if not ad_account_id:
        raise MetaAdsValidationError("Ad account id is required")
    return ad_account_id if ad_account_id.startswith("act_") else f"act_{ad_account_id}"


class MetaAdsClient:
    """Client for interacting with Meta Marketing API.

    Each instance owns its own `FacebookAdsApi` so concurrent requests for
    different customers never share a token through the SDK's global default.

    Usage:
        ```python
        client = MetaAdsClient(access_token="YOUR_TOKEN", timeout=30)
        accounts = client.list_ad_accounts()
        insights = client.get_account_insights("act_123456789")
        ```
    """

    def __init__(
        self,
        access_token: str,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = 30.0,
    ):
        """Initialize Meta Ads client with access token.

        Args:
            access_token: Meta user access token the customer connected
            app_id: Optional Meta app ID (enables appsecret_proof)
            app_secret: Optional Meta app secret
            api_version: Graph API version, e.g. "v18.0"
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.timeout = timeout

        session = FacebookSession(
            app_id=app_id,
            app_secret=app_secret,
            access_token=access_token,
            timeout=timeout,
        )
        self.api = FacebookAdsApi(session, api_version=api_version)

        logger.info("[META_CLIENT] Initialized with access token (timeout=%ss)", timeout)

    @rate_limit(calls_per_hour=200)
    def list_ad_accounts(self) -> List[Dict[str, Any]]:
        """List the ad accounts the access token can see.

        Returns:
            List of ad account dictionaries with fields:
                - id: "act_<account id>"
                - account_id, name, account_status, currency

        Raises:
            MetaAdsAuthenticationError: Invalid or expired token
            MetaAdsPermissionError: Token lacks ads_read
            MetaAdsNetworkError: Timeout / connection failure
            MetaAdsClientError: Other API errors
        """
        try:
            logger.info("[META_CLIENT] Fetching ad accounts for token")

            me = FacebookUser(fbid="me", api=self.api)
            accounts = me.get_ad_accounts(fields=[
                AdAccount.Field.id,
                AdAccount.Field.account_id,
                AdAccount.Field.name,
                AdAccount.Field.account_status,
                AdAccount.Field.currency,
            ])

            # SDK cursor handles pagination automatically
            result = []
            for account in accounts:
                account_dict = dict(account)
                account_dict["id"] = normalize_ad_account_id(
                    str(account_dict.get("id") or account_dict.get("account_id") or "")
                )
                result.append(account_dict)

            logger.info(f"[META_CLIENT] Fetched {len(result)} ad accounts")
            return result

        except FacebookRequestError as e:
            return self._handle_api_error(e, "fetching ad accounts")
        except requests.exceptions.RequestException as e:
            return self._handle_network_error(e, "fetching ad accounts")

    @rate_limit(calls_per_hour=200)
    def get_account_insights(
        self,
        ad_account_id: str,
        date_preset: str = "last_30d",
        time_increment: int = 1,
    ) -> List[Dict[str, Any]]:
        """Fetch daily account-level insights for a trailing window.

        CRITICAL NOTES:
            - Numeric fields arrive as strings ("5.50")
            - `actions` is a list of {action_type, value}; leads are the
              entries with action_type == "lead"
            - Days without delivery are omitted by Meta, so the list can be
              shorter than the window

        Args:
            ad_account_id: Meta ad account ID (with or without "act_")
            date_preset: Meta date preset, default trailing 30 days
            time_increment: 1 = one record per day

        Returns:
            List of insight dictionaries with fields:
                date_start, date_stop, impressions, clicks, spend, reach,
                cpc, cpm, actions

        Raises:
            MetaAdsAuthenticationError, MetaAdsPermissionError,
            MetaAdsValidationError, MetaAdsNetworkError, MetaAdsClientError
        """
        account_id = normalize_ad_account_id(ad_account_id)
        context = f"fetching insights for {account_id}"
        try:
            logger.info(
                f"[META_CLIENT] Fetching ACCOUNT-LEVEL insights: {account_id}, "
                f"preset={date_preset}, time_increment={time_increment}"
            )

            account = AdAccount(account_id, api=self.api)
            insights = account.get_insights(
                fields=[
                    AdsInsights.Field.date_start,
                    AdsInsights.Field.date_stop,
                    AdsInsights.Field.impressions,
                    AdsInsights.Field.clicks,
                    AdsInsights.Field.spend,
                    AdsInsights.Field.reach,
                    AdsInsights.Field.cpc,
                    AdsInsights.Field.cpm,
                    AdsInsights.Field.actions,
                ],
                params={
                    "level": "account",
                    "date_preset": date_preset,
                    "time_increment": time_increment,
                },
            )

            result = []
            for insight in insights:
                result.append(dict(insight))

            logger.info(f"[META_CLIENT] Fetched {len(result)} insight records")
            return result

        except FacebookRequestError as e:
            return self._handle_api_error(e, context)
        except requests.exceptions.RequestException as e:
            return self._handle_network_error(e, context)

    def _handle_network_error(self, error: requests.exceptions.RequestException, context: str) -> None:
        logger.error(f"[META_CLIENT] Network error while {context}: {error.__class__.__name__}: {error}")
        raise MetaAdsNetworkError(f"Could not reach Meta while {context}: {error.__class__.__name__}")

    def _handle_api_error(self, error: FacebookRequestError, context: str) -> None:
        """Handle Facebook API errors with specific exceptions.

        Raises:
            MetaAdsAuthenticationError: For 401 errors or OAuth error codes
            MetaAdsPermissionError: For 403 errors or permission error codes
            MetaAdsValidationError: For 400 errors
            MetaAdsRateLimitError: For 429 errors
            MetaAdsClientError: For other errors (500, etc.)
        """
        error_code = error.api_error_code()
        error_message = error.api_error_message()
        http_status = error.http_status()

        logger.error(
            f"[META_CLIENT] API error while {context}: "
            f"HTTP {http_status}, Code {error_code}, Message: {error_message}"
        )

        if http_status == 401 or error_code in _AUTH_ERROR_CODES:
            raise MetaAdsAuthenticationError(
                f"Authentication failed while {context}. Token may be expired or invalid."
            )
        elif http_status == 403 or error_code in _PERMISSION_ERROR_CODES:
            raise MetaAdsPermissionError(
                f"Permission denied while {context}. Check token permissions."
            )
        elif http_status == 400:
            raise MetaAdsValidationError(
                f"Invalid request while {context}: {error_message}"
            )
        elif http_status == 429:
            raise MetaAdsRateLimitError(
                f"Rate limit exceeded while {context}."
            )
        else:
            # 500, 503, or other server errors
            raise MetaAdsClientError(
                f"API error while {context}: HTTP {http_status}, {error_message}"
            )
