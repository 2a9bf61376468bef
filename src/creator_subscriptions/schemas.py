"""
Pydantic request/response models for the accounting API
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, List, Any
from datetime import datetime

from .db.models import CreditKind, RESOURCE_LIMIT_COLUMNS

QUOTA_RESOURCES = [kind.value for kind in CreditKind] + list(RESOURCE_LIMIT_COLUMNS)


class SubscriptionStatusResponse(BaseModel):
    """Access status of the caller's team"""
    is_active: bool
    is_expired: bool
    is_trial: bool
    can_access: bool
    days_remaining: Optional[int] = None
    trial_ended: bool = False
    plan: Dict[str, Any]
    subscription: Optional[Dict[str, Any]] = None
    team_id: int
    team_name: Optional[str] = None


class SubscribeRequest(BaseModel):
    plan_name: str = Field(..., min_length=1, max_length=50)


class PlanCreate(BaseModel):
    """Plan definition accepted by the admin plan endpoints"""
    name: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Z_]+$")
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    price: float = Field(..., ge=0, le=9999.99)
    trial_days: int = Field(0, ge=0, le=365)
    max_members: int = Field(..., ge=1, le=1000)
    max_brands: int = Field(..., ge=1, le=100)
    max_strategic_themes: int = Field(..., ge=1, le=500)
    max_personas: int = Field(..., ge=1, le=500)
    quick_content_creations: int = Field(..., ge=0, le=1000)
    custom_content_suggestions: int = Field(..., ge=0, le=1000)
    content_plans: int = Field(..., ge=0, le=500)
    content_reviews: int = Field(..., ge=0, le=1000)
    is_active: bool = True


class PlanUpdate(BaseModel):
    """Partial plan update; omitted fields keep their stored value"""
    name: Optional[str] = Field(None, min_length=1, max_length=50, pattern=r"^[A-Z_]+$")
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, le=9999.99)
    trial_days: Optional[int] = Field(None, ge=0, le=365)
    max_members: Optional[int] = Field(None, ge=1, le=1000)
    max_brands: Optional[int] = Field(None, ge=1, le=100)
    max_strategic_themes: Optional[int] = Field(None, ge=1, le=500)
    max_personas: Optional[int] = Field(None, ge=1, le=500)
    quick_content_creations: Optional[int] = Field(None, ge=0, le=1000)
    custom_content_suggestions: Optional[int] = Field(None, ge=0, le=1000)
    content_plans: Optional[int] = Field(None, ge=0, le=500)
    content_reviews: Optional[int] = Field(None, ge=0, le=1000)
    is_active: Optional[bool] = None


class SubscribeResponse(BaseModel):
    subscription_id: int
    plan_name: str
    status: str
    trial_end_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    credits: Dict[str, int]


class PlanUsageRequest(BaseModel):
    """Current usage of a team, checked against a plan"""
    team_id: int
    plan_id: int
    usage: Dict[str, int] = Field(default_factory=dict)

    @field_validator('usage')
    @classmethod
    def validate_usage_keys(cls, v):
        unknown = [key for key in v if key not in QUOTA_RESOURCES]
        if unknown:
            raise ValueError(f"Unknown usage keys: {', '.join(unknown)}")
        if any(value < 0 for value in v.values()):
            raise ValueError("Usage values cannot be negative")
        return v


class PlanUsageResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    percentages: Dict[str, Optional[float]]


class QuotaCheckRequest(BaseModel):
    resource: str = Field(..., description="Content credit kind or members/brands/themes/personas")
    current_usage: int = Field(..., ge=0)

    @field_validator('resource')
    @classmethod
    def validate_resource(cls, v):
        if v not in QUOTA_RESOURCES:
            raise ValueError(f"resource must be one of: {', '.join(QUOTA_RESOURCES)}")
        return v


class QuotaCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None


class CreditConsumeRequest(BaseModel):
    kind: CreditKind
    amount: int = Field(1, gt=0)


class CreditsResponse(BaseModel):
    credits: Dict[str, int]
    warning: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: int
    state: str
    accumulated_seconds: int
    message: Optional[str] = None


class SessionControlRequest(BaseModel):
    """Optional session id sent with pause/resume"""
    session_id: Optional[int] = None


class SessionEndResponse(BaseModel):
    session_id: Optional[int] = None
    duration: int
    total_day_time: int
    message: str


class CleanupResponse(BaseModel):
    message: str
    cleaned_sessions: int
