"""
API routers for the accounting subsystem
"""
from .subscription_routes import router as subscription_router, plans_router
from .quota_routes import router as quota_router
from .usage_session_routes import router as usage_session_router

__all__ = [
    "subscription_router",
    "plans_router",
    "quota_router",
    "usage_session_router",
]
