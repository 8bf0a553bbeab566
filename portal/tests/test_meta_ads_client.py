"""Unit tests for MetaAdsClient service.

WHAT:
    Tests Meta Ads API client functionality with mocked Facebook SDK responses.
    Verifies rate limiting, ad account listing, insights fetching and error
    handling.

WHY:
    Ensures MetaAdsClient works correctly without making real API calls.
    Fast, deterministic tests that don't require Meta credentials.

REFERENCES:
    - portal/services/meta_ads_client.py (module under test)
    - facebook_business SDK (mocked)
"""

import hashlib
from concurrent.futures import ThreadPoolExecutor
from time import time
from unittest.mock import Mock, patch

import pytest
import requests

from portal.services import meta_ads_client as module
from portal.services.meta_ads_client import (
    MetaAdsClient,
    MetaAdsClientError,
    MetaAdsAuthenticationError,
    MetaAdsNetworkError,
    MetaAdsPermissionError,
    MetaAdsRateLimitError,
    MetaAdsValidationError,
    normalize_ad_account_id,
    rate_limit,
)
from facebook_business.exceptions import FacebookRequestError


@pytest.fixture(autouse=True)
def reset_rate_limits():
    module._rate_limit_call_times.clear()
    yield
    module._rate_limit_call_times.clear()


def _request_error(http_status, body=None):
    return FacebookRequestError(
        message="Request failed",
        request_context={},
        http_status=http_status,
        http_headers={},
        body=body or {},
    )


class TestRateLimiting:
    """Test rate limiting decorator functionality."""

    def test_rate_limit_allows_under_limit(self):
        """WHAT: Rate limiter should allow calls under the limit.
        WHY: Ensures normal operation doesn't block valid calls.
        """
        call_count = 0

        @rate_limit(calls_per_hour=5)
        def dummy_func():
            nonlocal call_count
            call_count += 1
            return "success"

        start = time()
        for _ in range(5):
            assert dummy_func() == "success"

        assert call_count == 5
        assert time() - start < 0.1

    def test_rate_limit_preserves_function_metadata(self):
        @rate_limit(calls_per_hour=10)
        def dummy_func():
            """Test function docstring."""
            pass

        assert dummy_func.__name__ == "dummy_func"
        assert "Test function docstring" in dummy_func.__doc__

    @patch("portal.services.meta_ads_client.time")
    def test_rate_limit_shares_budget_for_same_client_token(self, mock_time):
        """WHAT: Different decorated methods should share one budget per client token.
        WHY: Meta rate limits apply across endpoints for the same access token.
        """
        mock_time.return_value = 0.0

        class FakeClient:
            access_token = "token-1"

        @rate_limit(calls_per_hour=2)
        def f1(client):
            return "f1"

        @rate_limit(calls_per_hour=2)
        def f2(client):
            return "f2"

        client = FakeClient()
        assert f1(client) == "f1"
        assert f2(client) == "f2"
        with pytest.raises(MetaAdsRateLimitError):
            f1(client)

    @patch("portal.services.meta_ads_client.time")
    def test_rate_limit_is_per_token(self, mock_time):
        """WHAT: Two customers' tokens never throttle each other."""
        mock_time.return_value = 0.0

        class Client:
            def __init__(self, token):
                self.access_token = token

        @rate_limit(calls_per_hour=1)
        def call(client):
            return client.access_token

        assert call(Client("a")) == "a"
        assert call(Client("b")) == "b"

    @patch("portal.services.meta_ads_client.time")
    def test_exhausted_budget_fails_fast_and_recovers(self, mock_time):
        """WHAT: Over budget raises instead of blocking; the window slides.
        WHY: Calls run in request threads and must respect the request timeout.
        """
        calls = []

        class Client:
            access_token = "token-1"

        @rate_limit(calls_per_hour=1)
        def call(client):
            calls.append(mock_time.return_value)
            return "ok"

        mock_time.return_value = 0.0
        call(Client())
        mock_time.return_value = 1800.0
        with pytest.raises(MetaAdsRateLimitError):
            call(Client())
        mock_time.return_value = 3601.0
        assert call(Client()) == "ok"
        assert calls == [0.0, 3601.0]

    @patch("portal.services.meta_ads_client.time")
    def test_tokens_are_hashed_and_idle_ones_evicted(self, mock_time):
        class Client:
            def __init__(self, token):
                self.access_token = token

        @rate_limit(calls_per_hour=5)
        def call(client):
            return "ok"

        mock_time.return_value = 0.0
        call(Client("EAAB-secret"))
        assert "EAAB-secret" not in module._rate_limit_call_times
        assert list(module._rate_limit_call_times) == [hashlib.sha256(b"EAAB-secret").hexdigest()]

        mock_time.return_value = 4000.0
        call(Client("EAAB-other"))
        assert list(module._rate_limit_call_times) == [hashlib.sha256(b"EAAB-other").hexdigest()]

    def test_concurrent_calls_never_exceed_budget(self):
        """WHAT: Threads sharing one token get exactly the budgeted number of calls."""

        class Client:
            access_token = "shared-token"

        @rate_limit(calls_per_hour=5)
        def call(client):
            return "ok"

        def attempt(_):
            try:
                return call(Client())
            except MetaAdsRateLimitError:
                return "limited"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(40)))

        assert results.count("ok") == 5
        assert results.count("limited") == 35


class TestMetaAdsClientInitialization:
    """Test client initialization."""

    @patch("portal.services.meta_ads_client.FacebookAdsApi")
    @patch("portal.services.meta_ads_client.FacebookSession")
    def test_init_builds_private_session_with_timeout(self, mock_session, mock_api):
        """WHAT: Each client owns its session and API object.
        WHY: The SDK's global default API would leak tokens between customers.
        """
        client = MetaAdsClient(
            access_token="test_token",
            app_id="123",
            app_secret="secret",
            api_version="v18.0",
            timeout=12,
        )

        mock_session.assert_called_once_with(
            app_id="123",
            app_secret="secret",
            access_token="test_token",
            timeout=12,
        )
        mock_api.assert_called_once_with(mock_session.return_value, api_version="v18.0")
        mock_api.init.assert_not_called()
        assert client.api is mock_api.return_value
        assert client.access_token == "test_token"


def test_normalize_ad_account_id():
    assert normalize_ad_account_id("123") == "act_123"
    assert normalize_ad_account_id(" act_123 ") == "act_123"
    with pytest.raises(MetaAdsValidationError):
        normalize_ad_account_id("")


@patch("portal.services.meta_ads_client.FacebookAdsApi")
@patch("portal.services.meta_ads_client.FacebookSession")
class TestListAdAccounts:

    @patch("portal.services.meta_ads_client.FacebookUser")
    def test_list_success(self, mock_user_class, mock_session, mock_api):
        mock_user_class.return_value.get_ad_accounts.return_value = [
            {"id": "act_1", "account_id": "1", "name": "ACME", "account_status": 1, "currency": "EUR"},
            {"account_id": "2", "name": "No id"},
        ]

        client = MetaAdsClient(access_token="test_token")
        accounts = client.list_ad_accounts()

        assert [a["id"] for a in accounts] == ["act_1", "act_2"]
        assert accounts[0]["currency"] == "EUR"
        mock_user_class.assert_called_once_with(fbid="me", api=client.api)

    @patch("portal.services.meta_ads_client.FacebookUser")
    def test_expired_token(self, mock_user_class, mock_session, mock_api):
        """WHAT: OAuth error 190 is an authentication failure even on HTTP 400."""
        mock_user_class.return_value.get_ad_accounts.side_effect = _request_error(
            400, body={"error": {"code": 190, "message": "Error validating access token"}}
        )

        client = MetaAdsClient(access_token="test_token")

        with pytest.raises(MetaAdsAuthenticationError):
            client.list_ad_accounts()


@patch("portal.services.meta_ads_client.FacebookAdsApi")
@patch("portal.services.meta_ads_client.FacebookSession")
class TestGetAccountInsights:
    """Test insights (metrics) fetching functionality."""

    @patch("portal.services.meta_ads_client.AdAccount")
    def test_account_insights_success(self, mock_account_class, mock_session, mock_api):
        """WHAT: Should fetch daily account-level insights for the trailing window.
        WHY: The ingestor aggregates these into one snapshot.
        """
        mock_account = Mock()
        mock_account_class.return_value = mock_account
        mock_account.get_insights.return_value = [
            {
                "date_start": "2026-03-01",
                "date_stop": "2026-03-01",
                "spend": "100.50",
                "impressions": "1000",
                "clicks": "50",
                "actions": [{"action_type": "lead", "value": "2"}],
            }
        ]

        client = MetaAdsClient(access_token="test_token")
        insights = client.get_account_insights("123")

        assert len(insights) == 1
        assert insights[0]["spend"] == "100.50"
        mock_account_class.assert_called_once_with("act_123", api=client.api)
        params = mock_account.get_insights.call_args.kwargs["params"]
        assert params == {"level": "account", "date_preset": "last_30d", "time_increment": 1}

    @patch("portal.services.meta_ads_client.AdAccount")
    def test_empty_window(self, mock_account_class, mock_session, mock_api):
        mock_account_class.return_value.get_insights.return_value = []

        client = MetaAdsClient(access_token="test_token")

        assert client.get_account_insights("act_123") == []

    @pytest.mark.parametrize(
        "http_status,expected",
        [
            (401, MetaAdsAuthenticationError),
            (403, MetaAdsPermissionError),
            (400, MetaAdsValidationError),
            (429, MetaAdsRateLimitError),
            (500, MetaAdsClientError),
        ],
    )
    @patch("portal.services.meta_ads_client.AdAccount")
    def test_api_errors(self, mock_account_class, mock_session, mock_api, http_status, expected):
        """WHAT: HTTP status maps to a specific client exception.
        WHY: The ingestor turns these into reconnect vs retry errors.
        """
        mock_account_class.return_value.get_insights.side_effect = _request_error(http_status)

        client = MetaAdsClient(access_token="test_token")

        with pytest.raises(expected):
            client.get_account_insights("act_123")

    @patch("portal.services.meta_ads_client.AdAccount")
    def test_timeout_is_network_error(self, mock_account_class, mock_session, mock_api):
        mock_account_class.return_value.get_insights.side_effect = requests.exceptions.Timeout("read timed out")

        client = MetaAdsClient(access_token="test_token")

        with pytest.raises(MetaAdsNetworkError):
            client.get_account_insights("act_123")

    @pytest.mark.parametrize("error_code", [10, 200, 294])
    @patch("portal.services.meta_ads_client.AdAccount")
    def test_permission_codes_on_http_400(self, mock_account_class, mock_session, mock_api, error_code):
        """WHAT: Permission error codes map to MetaAdsPermissionError even on HTTP 400.
        WHY: The customer has to reconnect with the missing permission, retrying won't help.
        """
        mock_account_class.return_value.get_insights.side_effect = _request_error(
            400, body={"error": {"code": error_code, "message": "Permissions error"}}
        )

        client = MetaAdsClient(access_token="test_token")

        with pytest.raises(MetaAdsPermissionError):
            client.get_account_insights("act_123")
