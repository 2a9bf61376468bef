"""
Database models for Creator Subscriptions
"""
from .plan import Plan, PlanName, UNLIMITED_SENTINEL, RESOURCE_LIMIT_COLUMNS
from .team import Team, User, CreditKind, UserRole
from .subscription import Subscription, SubscriptionStatus
from .usage_session import UsageSession, UsageSessionState, UsageSessionEndReason

__all__ = [
    "Plan",
    "PlanName",
    "UNLIMITED_SENTINEL",
    "RESOURCE_LIMIT_COLUMNS",
    "Team",
    "User",
    "CreditKind",
    "UserRole",
    "Subscription",
    "SubscriptionStatus",
    "UsageSession",
    "UsageSessionState",
    "UsageSessionEndReason",
]
