"""
Subscription history model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class SubscriptionStatus(str, enum.Enum):
    """Subscription status enum"""
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Subscription(Base):
    """Append-only plan assignment; at most one active row per team"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    start_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    trial_end_date = Column(DateTime, nullable=True, index=True)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="subscriptions")
    plan = relationship("Plan", back_populates="subscriptions")
