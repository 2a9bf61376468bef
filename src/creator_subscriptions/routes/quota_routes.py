"""
Quota check and credit consumption API routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from ..db import get_db
from ..db.models import Team
from ..auth import get_current_team
from ..schemas import QuotaCheckRequest, QuotaCheckResponse, CreditConsumeRequest, CreditsResponse
from ..services.quota_guard import QuotaGuard, CONTENT_KINDS
from ..services.credit_ledger import CreditLedger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quota"])


@router.post("/api/quota/check", response_model=QuotaCheckResponse)
async def check_quota(
    request: QuotaCheckRequest,
    team: Team = Depends(get_current_team),
    db: Session = Depends(get_db)
):
    """
    Ask whether the caller's team may create or consume one more unit

    Denials come back as ``allowed: false`` with a reason, not as an error status.
    """
    guard = QuotaGuard(db)
    if request.resource in CONTENT_KINDS:
        decision = guard.can_perform(team.id, request.resource, request.current_usage)
    else:
        checks = {
            "members": guard.can_add_members,
            "brands": guard.can_create_brand,
            "personas": guard.can_create_persona,
            "themes": guard.can_create_theme,
        }
        decision = checks[request.resource](team.id, request.current_usage)
    return decision.to_dict()


@router.get("/api/teams/credits", response_model=CreditsResponse)
async def get_credits(
    team: Team = Depends(get_current_team),
    db: Session = Depends(get_db)
):
    return {"credits": CreditLedger(db).get_credits(team.id)}


@router.post("/api/teams/credits/consume", response_model=CreditsResponse)
async def consume_credits(
    request: CreditConsumeRequest,
    team: Team = Depends(get_current_team),
    db: Session = Depends(get_db)
):
    """
    Debit credits after a content action succeeded

    A failed write is reported in ``warning``; the action is not undone.
    """
    update = CreditLedger(db).decrement(team.id, request.kind.value, request.amount)
    if update.warning:
        logger.warning(f"Credit debit for team {team.id} returned a warning: {update.warning}")
    return update.to_dict()
