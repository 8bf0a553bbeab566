"""Pydantic schemas for request/response payloads."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from .models import NotificationTypeEnum


# =============================================================================
# ONBOARDING CHECKLIST
# =============================================================================


class WebDesign(BaseModel):
    """Landing page design preferences."""

    logo_url: Optional[str] = Field(None, description="Uploaded logo URL")
    color_scheme: str = Field("", description="Brand colors, e.g. '#FF6600, #1A1A1A'")
    template_preference: Optional[str] = Field(None, description="Preferred landing page template")


class MarketResearch(BaseModel):
    """Competitive landscape."""

    competitors: List[str] = Field(default_factory=list, description="Competitor names or domains")
    unique_selling_point: Optional[str] = None
    market_size: Optional[str] = None


class LegalInfo(BaseModel):
    """Legal texts required for the landing page."""

    address: str = Field("", description="Registered business address")
    impressum: str = Field("", description="Impressum text")
    privacy: str = Field("", description="Privacy policy text")


class TargetGroup(BaseModel):
    """Optional ad targeting hints."""

    gender: Optional[str] = None
    age: Optional[str] = None
    location: Optional[str] = None
    interests: List[str] = Field(default_factory=list)


class ChecklistPayload(BaseModel):
    """Business information submitted once during onboarding.

    Required text fields default to "" so that missing and blank values are
    reported together by portal/services/checklist_intake.py.
    """

    payment_option: str = Field("", description="Selected payment plan")
    tax_id: str = Field("", description="VAT / tax identification number")
    domain: str = Field("", description="Domain for the landing page")
    target_audience: str = Field("", description="Free-text description of the target audience")
    company_info: str = Field("", description="Short company description")
    web_design: WebDesign = Field(default_factory=WebDesign)
    market_research: MarketResearch = Field(default_factory=MarketResearch)
    legal_info: LegalInfo = Field(default_factory=LegalInfo)
    target_group: TargetGroup = Field(default_factory=TargetGroup)
    ideal_customer_profile: Dict[str, Any] = Field(default_factory=dict)
    qualification_questions: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "example": {
                "payment_option": "monthly",
                "tax_id": "DE123456789",
                "domain": "acme-coaching.de",
                "target_audience": "Self-employed coaches in DACH",
                "company_info": "Business coaching for solo founders",
                "web_design": {"color_scheme": "#FF6600, #1A1A1A"},
                "market_research": {"competitors": ["coachhub.io"]},
                "legal_info": {
                    "address": "Musterstr. 1, 10115 Berlin",
                    "impressum": "ACME Coaching GmbH ...",
                    "privacy": "Datenschutzerklärung ...",
                },
            }
        }
    }


class ChecklistOut(BaseModel):
    id: UUID
    user_id: UUID
    payment_option: str
    tax_id: str
    domain: str
    target_audience: str
    company_info: str
    web_design: Dict[str, Any]
    market_research: Dict[str, Any]
    legal_info: Dict[str, Any]
    target_group: Dict[str, Any]
    ideal_customer_profile: Dict[str, Any]
    qualification_questions: Dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# PROGRESS
# =============================================================================


class StepOut(BaseModel):
    step: int
    phase: str
    label: str
    percent: int
    reached: bool


class ProgressResponse(BaseModel):
    """Current onboarding state of one customer."""

    customer_id: UUID
    current_phase: str
    completed_phases: List[str]
    progress: int = Field(description="Percent complete, 0-100")
    onboarding_completed: bool
    steps: List[StepOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class PhaseAdvanceRequest(BaseModel):
    phase: str = Field(description="Target phase name, e.g. 'landingpage'")


class CustomerTrackingOut(ProgressResponse):
    """Admin tracking row: progress plus identity."""

    email: str
    first_name: str
    last_name: str
    is_approved: bool
    last_active: Optional[datetime] = None


# =============================================================================
# TUTORIALS
# =============================================================================


class TutorialOut(BaseModel):
    id: UUID
    title: str
    description: str
    video_url: str
    thumbnail_url: Optional[str] = None
    category: str
    order: int
    completed: bool = False


# =============================================================================
# META / METRICS
# =============================================================================


class MetaConnectRequest(BaseModel):
    access_token: str = Field(min_length=1, description="Short- or long-lived Meta user access token")


class AdAccountOut(BaseModel):
    id: str = Field(description="Ad account id with act_ prefix")
    account_id: Optional[str] = None
    name: Optional[str] = None
    account_status: Optional[int] = None
    currency: Optional[str] = None


class MetricsSnapshotOut(BaseModel):
    id: UUID
    user_id: UUID
    ad_account_id: Optional[str] = None
    leads: int
    ad_spend: Decimal
    clicks: int
    impressions: int
    reach: int
    cpc: Decimal
    cpm: Decimal
    date: datetime

    model_config = {"from_attributes": True}

    @field_serializer("ad_spend", "cpc", "cpm")
    def _decimal_to_float(self, value: Decimal) -> float:
        return float(value)


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class NotificationOut(BaseModel):
    id: UUID
    type: NotificationTypeEnum
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# =============================================================================
# GENERIC
# =============================================================================


class SuccessResponse(BaseModel):
    success: bool = True
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
