"""
Plan catalog model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class PlanName(str, enum.Enum):
    """Plan tier names, in display order"""
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


# Stored limits at or above this value mean "unlimited"
UNLIMITED_SENTINEL = 999999

# Count resources and the plan column holding each one's limit
RESOURCE_LIMIT_COLUMNS = {
    "members": "max_members",
    "brands": "max_brands",
    "themes": "max_strategic_themes",
    "personas": "max_personas",
}


class Plan(Base):
    """Plan tier definition with count limits and monthly content quotas"""
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    trial_days = Column(Integer, nullable=False, default=0)

    # Count limits
    max_members = Column(Integer, nullable=False, default=1)
    max_brands = Column(Integer, nullable=False, default=1)
    max_strategic_themes = Column(Integer, nullable=False, default=1)
    max_personas = Column(Integer, nullable=False, default=1)

    # Content quotas (per month)
    quick_content_creations = Column(Integer, nullable=False, default=0)
    custom_content_suggestions = Column(Integer, nullable=False, default=0)
    content_plans = Column(Integer, nullable=False, default=0)
    content_reviews = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    teams = relationship("Team", back_populates="current_plan")
    subscriptions = relationship("Subscription", back_populates="plan")

    def __repr__(self):
        return f"<Plan {self.name}>"
