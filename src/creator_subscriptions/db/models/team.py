"""
Team (tenant) and User models
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Dict
import enum

from ..base import Base


class CreditKind(str, enum.Enum):
    """The four content-credit counters kept on a team"""
    QUICK_CONTENT_CREATIONS = "quick_content_creations"
    CUSTOM_CONTENT_SUGGESTIONS = "custom_content_suggestions"
    CONTENT_PLANS = "content_plans"
    CONTENT_REVIEWS = "content_reviews"


class UserRole(str, enum.Enum):
    """User role enum"""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class Team(Base):
    """Billing/tenant unit; all quotas and credits are scoped to it"""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    admin_user_id = Column(Integer, nullable=True, index=True)
    current_plan_id = Column(Integer, ForeignKey("plans.id"), nullable=True, index=True)

    # Remaining balances, not consumed counts
    credits_quick_content_creations = Column(Integer, nullable=False, default=0)
    credits_custom_content_suggestions = Column(Integer, nullable=False, default=0)
    credits_content_plans = Column(Integer, nullable=False, default=0)
    credits_content_reviews = Column(Integer, nullable=False, default=0)

    is_trial_active = Column(Boolean, nullable=False, default=False)
    trial_ends_at = Column(DateTime, nullable=True)

    # Optimistic-concurrency token for credit and plan writes
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    current_plan = relationship("Plan", back_populates="teams")
    subscriptions = relationship(
        "Subscription", back_populates="team", cascade="all, delete-orphan",
        order_by="Subscription.created_at",
    )
    members = relationship("User", back_populates="team", foreign_keys="User.team_id")

    __mapper_args__ = {"version_id_col": version}

    @property
    def credits(self) -> Dict[str, int]:
        """Remaining credit balances keyed by CreditKind value"""
        return {kind.value: getattr(self, f"credits_{kind.value}") or 0 for kind in CreditKind}

    @credits.setter
    def credits(self, values: Dict[str, int]):
        for kind in CreditKind:
            if kind.value in values:
                setattr(self, f"credits_{kind.value}", int(values[kind.value]))


class User(Base):
    """User account as seen by the accounting subsystem"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.MEMBER.value)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="members", foreign_keys=[team_id])
    usage_sessions = relationship("UsageSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
