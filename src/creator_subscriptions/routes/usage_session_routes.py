"""
Usage session API routes
start/pause/resume/heartbeat/end are called by the client tracker
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
import logging

from ..db import get_db
from ..db.models import User
from ..auth import get_current_user, require_admin
from ..schemas import (
    SessionResponse,
    SessionControlRequest,
    SessionEndResponse,
    CleanupResponse,
)
from ..services.usage_session_service import UsageSessionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/usage-session", tags=["usage-session"])


def _session_response(service: UsageSessionService, session, message: str) -> dict:
    return {
        "session_id": session.id,
        "state": session.state,
        "accumulated_seconds": service.elapsed_seconds(session),
        "message": message,
    }


@router.post("/start", response_model=SessionResponse)
async def start_session(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Return the caller's open session or start a new one"""
    service = UsageSessionService(db)
    session = service.start(current_user.id)
    return _session_response(service, session, "Usage session started")


@router.post("/pause", response_model=SessionResponse)
async def pause_session(
    request: Optional[SessionControlRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = UsageSessionService(db)
    session = service.pause(current_user.id, request.session_id if request else None)
    return _session_response(service, session, "Usage session paused")


@router.post("/resume", response_model=SessionResponse)
async def resume_session(
    request: Optional[SessionControlRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Resume the paused session; the returned id is new if the old one had ended"""
    service = UsageSessionService(db)
    session = service.resume(current_user.id, request.session_id if request else None)
    return _session_response(service, session, "Usage session resumed")


@router.post("/heartbeat", response_model=SessionResponse)
async def heartbeat(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Keep the running session alive; 404 when the caller has no open session"""
    service = UsageSessionService(db)
    session = service.heartbeat(current_user.id)
    return _session_response(service, session, "Usage session updated")


@router.post("/end", response_model=SessionEndResponse)
async def end_session(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = UsageSessionService(db).end(current_user.id)
    return {
        "session_id": result.session.id if result.session else None,
        "duration": result.duration_seconds,
        "total_day_time": result.total_day_seconds,
        "message": "Usage session ended" if result.session else "No active session found",
    }


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    cleaned = UsageSessionService(db).cleanup_orphaned()
    return {
        "message": f"Cleanup finished: {cleaned} orphaned session(s) closed",
        "cleaned_sessions": cleaned,
    }


@router.get("/stats")
async def session_stats(
    user_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Usage statistics over ended sessions (admins only)"""
    return UsageSessionService(db).stats(user_id=user_id, start=start_date, end=end_date)
