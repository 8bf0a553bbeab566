"""SQLAlchemy ORM models and enums.

This module defines the portal schema using UUID primary keys and explicit
relationships. Customers and admins share the `users` table; the onboarding
state (phase, completed phases, progress) lives on the user row so it can be
locked and updated atomically.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class RoleEnum(str, enum.Enum):
    customer = "customer"
    admin = "admin"


class NotificationTypeEnum(str, enum.Enum):
    lead = "lead"


# Core models ----------------------------------------------------

class User(Base):
    """A portal account: either a customer going through onboarding or an admin.

    Onboarding state:
        current_phase:     one of the phases in portal/services/phase_model.py
        completed_phases:  JSON list of phase names, never shrinks, no duplicates
        progress:          percent 0-100, never regresses
        version:           optimistic-concurrency counter (mapper version_id_col)

    Always mutate onboarding state through portal/services/progress_store.py.
    """
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    role = Column(Enum(RoleEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False, default=RoleEnum.customer)
    is_approved = Column(Boolean, default=False, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_active = Column(DateTime, nullable=True)

    # Onboarding state
    current_phase = Column(String, default="onboarding", nullable=False)
    completed_phases = Column(JSON, default=list, nullable=False)
    progress = Column(Integer, default=20, nullable=False)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, nullable=False)

    # Meta connection flag (token itself lives in MetaCredential)
    meta_connected = Column(Boolean, default=False, nullable=False)

    checklists = relationship("ChecklistSubmission", back_populates="user")
    meta_credential = relationship("MetaCredential", back_populates="user", uselist=False)
    snapshots = relationship("MetricsSnapshot", back_populates="user")
    notifications = relationship("Notification", back_populates="user")
    tutorial_progress = relationship("TutorialProgress", back_populates="user")

    __mapper_args__ = {"version_id_col": version}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return f"{self.full_name} ({self.email})"


class ChecklistSubmission(Base):
    """The one-time business-information checklist submitted during onboarding.

    One row per customer (unique on user_id). Nested structs are stored as JSON
    after validation in portal/services/checklist_intake.py.
    """
    __tablename__ = "customer_checklists"
    __table_args__ = (UniqueConstraint("user_id", name="uq_customer_checklist_user"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    payment_option = Column(String, nullable=False)
    tax_id = Column(String, nullable=False)
    domain = Column(String, nullable=False)
    target_audience = Column(Text, nullable=False)
    company_info = Column(Text, nullable=False)

    web_design = Column(JSON, nullable=False, default=dict)
    market_research = Column(JSON, nullable=False, default=dict)
    legal_info = Column(JSON, nullable=False, default=dict)
    target_group = Column(JSON, nullable=False, default=dict)
    ideal_customer_profile = Column(JSON, nullable=False, default=dict)
    qualification_questions = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="checklists")


class MetaCredential(Base):
    """Encrypted Meta access token for one customer.

    REFERENCES:
        - portal/security.py (encrypt_secret / decrypt_secret)
        - portal/services/token_service.py
    """
    __tablename__ = "meta_credentials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, unique=True)
    access_token_enc = Column(String, nullable=False)
    connected_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="meta_credential")


class MetricsSnapshot(Base):
    """One aggregated 30-day metrics record per fetch. Append-only.

    Ordering by `date` drives trend charts and lead notifications.
    """
    __tablename__ = "metrics_snapshots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    ad_account_id = Column(String, nullable=True)

    leads = Column(Integer, default=0, nullable=False)
    ad_spend = Column(Numeric(14, 2), default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    impressions = Column(Integer, default=0, nullable=False)
    reach = Column(Integer, default=0, nullable=False)
    cpc = Column(Numeric(14, 4), default=0, nullable=False)
    cpm = Column(Numeric(14, 4), default=0, nullable=False)

    date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="snapshots")


class Notification(Base):
    """In-app notification. Currently only "new leads" notifications exist.

    `snapshot_id` is the snapshot whose lead increase produced the
    notification; it is unique so a snapshot never yields two notifications.
    """
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    snapshot_id = Column(UUID(as_uuid=True), ForeignKey("metrics_snapshots.id"), nullable=True, unique=True)
    type = Column(Enum(NotificationTypeEnum, values_callable=lambda obj: [e.value for e in obj]), nullable=False, default=NotificationTypeEnum.lead)
    message = Column(String, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")


class Tutorial(Base):
    """Video tutorial; `is_onboarding` ones make up the guided intro."""
    __tablename__ = "tutorials"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    video_url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=True)
    category = Column(String, nullable=False)
    is_onboarding = Column(Boolean, default=False, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return self.title


class TutorialProgress(Base):
    """Which tutorials a customer has watched."""
    __tablename__ = "tutorial_progress"
    __table_args__ = (UniqueConstraint("user_id", "tutorial_id", name="uq_tutorial_progress"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    tutorial_id = Column(UUID(as_uuid=True), ForeignKey("tutorials.id"), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="tutorial_progress")
    tutorial = relationship("Tutorial")
