"""
Subscription and plan catalog API routes
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError
from typing import List, Dict, Any
import logging

from ..db import get_db
from ..db.models import User, Team, Subscription
from ..auth import get_current_user, get_current_team, require_admin
from ..exceptions import NotFoundError
from ..schemas import (
    SubscriptionStatusResponse,
    SubscribeRequest,
    SubscribeResponse,
    PlanCreate,
    PlanUpdate,
    PlanUsageRequest,
    PlanUsageResponse,
)
from ..services.plan_catalog import PlanCatalog, serialize_plan
from ..services.plan_cache import get_plan_cache
from ..services.subscription_service import SubscriptionStatusResolver, SubscriptionService
from ..services.quota_guard import validate_plan_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams", tags=["subscription"])
plans_router = APIRouter(prefix="/api/plans", tags=["plans"])

# Seconds a client should wait before retrying after a connection failure
CONNECTION_RETRY_AFTER = 30


def get_plan_catalog(db: Session = Depends(get_db)) -> PlanCatalog:
    return PlanCatalog(db, cache=get_plan_cache())


@router.get("/subscription-status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    team: Team = Depends(get_current_team),
    db: Session = Depends(get_db)
):
    """
    Get the caller's team subscription status

    Overdue trials are swept first so the answer reflects the current time.
    Database connection failures return 503 with a retry hint.
    """
    try:
        SubscriptionService(db).expire_overdue_trials()
        subscription_status = SubscriptionStatusResolver(db).resolve(team.id)
    except OperationalError as e:
        db.rollback()
        logger.error(f"Database unavailable while resolving team {team.id} status: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Temporary connection problem",
                "can_access": False,
                "is_expired": True,
                "retry_after": CONNECTION_RETRY_AFTER,
            },
            headers={"Retry-After": str(CONNECTION_RETRY_AFTER)},
        )

    return {
        **subscription_status.to_dict(),
        "team_id": team.id,
        "team_name": team.name,
    }


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe_team(
    request: SubscribeRequest,
    current_user: User = Depends(get_current_user),
    team: Team = Depends(get_current_team),
    db: Session = Depends(get_db)
):
    """Start a new subscription for the caller's team (team admins only)"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only team admins can change the subscription"
        )

    subscription: Subscription = SubscriptionService(db).create_team_subscription(
        team.id, request.plan_name.upper()
    )
    db.refresh(team)

    return SubscribeResponse(
        subscription_id=subscription.id,
        plan_name=subscription.plan.name,
        status=subscription.status,
        trial_end_date=subscription.trial_end_date,
        end_date=subscription.end_date,
        credits=team.credits,
    )


@plans_router.get("")
async def list_plans(catalog: PlanCatalog = Depends(get_plan_catalog)) -> List[Dict[str, Any]]:
    """Active plans in display order (FREE, BASIC, PRO, ENTERPRISE)"""
    return catalog.list_active_serialized()


@plans_router.get("/{plan_id}")
async def get_plan(plan_id: int, catalog: PlanCatalog = Depends(get_plan_catalog)) -> Dict[str, Any]:
    plan = catalog.get_by_id(plan_id)
    if plan is None:
        raise NotFoundError("Plan", plan_id)
    return serialize_plan(plan)


@plans_router.post("", status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: PlanCreate,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog)
) -> Dict[str, Any]:
    """Create a plan; business rule violations return 400 with the list of errors"""
    plan = catalog.create_plan(request)
    logger.info(f"Admin {admin.id} created plan {plan.name}")
    return serialize_plan(plan)


@plans_router.put("/{plan_id}")
async def update_plan(
    plan_id: int,
    request: PlanUpdate,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog)
) -> Dict[str, Any]:
    plan = catalog.update_plan(plan_id, request)
    logger.info(f"Admin {admin.id} updated plan {plan.name}")
    return serialize_plan(plan)


@plans_router.delete("/{plan_id}")
async def delete_plan(
    plan_id: int,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog)
) -> Dict[str, Any]:
    """Delete a plan; system plans and plans in use are refused with 400"""
    catalog.delete_plan(plan_id)
    logger.info(f"Admin {admin.id} deleted plan {plan_id}")
    return {"message": "Plan deleted", "plan_id": plan_id}


@plans_router.post("/validate-usage", response_model=PlanUsageResponse)
async def validate_usage(
    request: PlanUsageRequest,
    current_user: User = Depends(get_current_user),
    catalog: PlanCatalog = Depends(get_plan_catalog),
    db: Session = Depends(get_db)
):
    """Check a team's usage against a plan, e.g. before a downgrade"""
    if current_user.team_id != request.team_id and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    if db.query(Team).filter(Team.id == request.team_id).first() is None:
        raise NotFoundError("Team", request.team_id)

    plan = catalog.get_by_id(request.plan_id)
    if plan is None:
        raise NotFoundError("Plan", request.plan_id)

    return validate_plan_usage(request.usage, plan).to_dict()
