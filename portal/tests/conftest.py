"""Pytest configuration for portal tests

WHAT: Provides shared fixtures for service-level and HTTP endpoint tests
WHY: Ensures consistent test setup, database isolation, and mock configuration
REFERENCES:
    - portal/main.py: FastAPI application
    - portal/database.py: Database configuration
    - portal/deps.py: Dependency injection
"""

import os
from datetime import datetime
from decimal import Decimal
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment (portal.security and portal.database read these at import time)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be URL-safe base64-encoded 32-byte string (portal.security validates at import time)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BACKEND_CORS_ORIGINS", "http://localhost:5173")
os.environ.pop("RESEND_API_KEY", None)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine."""
    # StaticPool: TestClient runs sync endpoints in worker threads, and every
    # thread must see the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from portal.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create test database session with rollback."""
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

def _make_user(session, email, role, **overrides):
    from portal.models import User

    fields = dict(
        email=email,
        first_name="Test",
        last_name="User",
        role=role,
        is_approved=True,
        created_at=datetime.utcnow(),
    )
    fields.update(overrides)
    user = User(**fields)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def customer(test_db_session):
    """Approved customer at the start of onboarding."""
    from portal.models import RoleEnum

    return _make_user(
        test_db_session,
        "jane@acme-coaching.de",
        RoleEnum.customer,
        first_name="Jane",
        last_name="Doe",
        company_name="ACME Coaching",
    )


@pytest.fixture
def other_customer(test_db_session):
    """Second customer (for isolation tests)."""
    from portal.models import RoleEnum

    return _make_user(test_db_session, "max@example.com", RoleEnum.customer, first_name="Max")


@pytest.fixture
def pending_customer(test_db_session):
    """Registered customer still waiting for approval."""
    from portal.models import RoleEnum

    return _make_user(
        test_db_session,
        "pending@example.com",
        RoleEnum.customer,
        first_name="Paula",
        is_approved=False,
    )


@pytest.fixture
def admin(test_db_session):
    from portal.models import RoleEnum

    return _make_user(test_db_session, "admin@nextmove-consulting.de", RoleEnum.admin, first_name="Admin")


@pytest.fixture
def connected_customer(test_db_session, customer):
    """Customer with a stored (encrypted) Meta access token."""
    from portal.services.token_service import store_meta_token

    store_meta_token(test_db_session, customer.id, "EAAB-test-token")
    return customer


@pytest.fixture
def make_snapshot(test_db_session):
    """Factory inserting a metrics snapshot with explicit date and leads."""
    from portal.models import MetricsSnapshot

    def _make(user_id, leads, date, **fields):
        snapshot = MetricsSnapshot(
            user_id=user_id,
            ad_account_id=fields.pop("ad_account_id", "act_123"),
            leads=leads,
            ad_spend=fields.pop("ad_spend", Decimal("10.00")),
            clicks=fields.pop("clicks", 10),
            impressions=fields.pop("impressions", 1000),
            reach=fields.pop("reach", 800),
            cpc=fields.pop("cpc", Decimal("1.0000")),
            cpm=fields.pop("cpm", Decimal("10.0000")),
            date=date,
        )
        test_db_session.add(snapshot)
        test_db_session.commit()
        test_db_session.refresh(snapshot)
        return snapshot

    return _make


@pytest.fixture
def valid_checklist():
    """Complete checklist payload as the frontend sends it."""
    from portal.schemas import ChecklistPayload

    return ChecklistPayload(
        payment_option="monthly",
        tax_id="DE123456789",
        domain="acme-coaching.de",
        target_audience="Self-employed coaches in DACH",
        company_info="Business coaching for solo founders",
        web_design={"color_scheme": "#FF6600, #1A1A1A"},
        market_research={"competitors": ["coachhub.io", "  "]},
        legal_info={
            "address": "Musterstr. 1, 10115 Berlin",
            "impressum": "ACME Coaching GmbH",
            "privacy": "Datenschutzerklaerung",
        },
        target_group={"age": "30-50", "interests": ["coaching"]},
    )


# ============================================================================
# Fake Meta Client
# ============================================================================

class FakeMetaClient:
    """Stands in for MetaAdsClient; records calls, returns canned data or raises."""

    def __init__(self, insights=None, accounts=None, error=None):
        self.insights = insights or []
        self.accounts = accounts or []
        self.error = error
        self.calls = []

    def get_account_insights(self, ad_account_id, date_preset="last_30d", time_increment=1):
        self.calls.append(("insights", ad_account_id, date_preset))
        if self.error:
            raise self.error
        return list(self.insights)

    def list_ad_accounts(self):
        self.calls.append(("accounts",))
        if self.error:
            raise self.error
        return list(self.accounts)


@pytest.fixture
def fake_meta_client():
    return FakeMetaClient


@pytest.fixture
def three_day_insights():
    """Three daily records: 350 impressions, 35 clicks, 5 leads, 13.50 spend."""
    return [
        {"date_start": "2026-03-01", "impressions": 100, "clicks": 10, "spend": "5.50",
         "reach": "90", "actions": [{"action_type": "lead", "value": "2"},
                                    {"action_type": "link_click", "value": "10"}]},
        {"date_start": "2026-03-02", "impressions": 200, "clicks": 20, "spend": "7.00",
         "reach": "120", "actions": [{"action_type": "lead", "value": "3"}]},
        {"date_start": "2026-03-03", "impressions": 50, "clicks": 5, "spend": "1.00",
         "reach": "70", "actions": []},
    ]


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session):
    """Create FastAPI test application."""
    from portal.main import create_app
    from portal.database import get_db

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db

    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Unauthenticated TestClient."""
    return TestClient(app)


def _login(app, user) -> TestClient:
    from portal.security import create_access_token

    test_client = TestClient(app)
    test_client.cookies.set("access_token", create_access_token(user.email))
    return test_client


@pytest.fixture
def customer_client(app, customer) -> TestClient:
    return _login(app, customer)


@pytest.fixture
def admin_client(app, admin) -> TestClient:
    return _login(app, admin)


@pytest.fixture
def login(app):
    """Factory: TestClient authenticated as any user."""
    return lambda user: _login(app, user)
