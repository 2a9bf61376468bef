"""
Database module for Creator Subscriptions
"""
from .engine import engine, SessionLocal, get_db, init_db, create_database_engine
from .base import Base
from .models import (
    Plan,
    PlanName,
    Team,
    User,
    CreditKind,
    UserRole,
    Subscription,
    SubscriptionStatus,
    UsageSession,
    UsageSessionState,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "create_database_engine",
    "Base",
    "Plan",
    "PlanName",
    "Team",
    "User",
    "CreditKind",
    "UserRole",
    "Subscription",
    "SubscriptionStatus",
    "UsageSession",
    "UsageSessionState",
]
