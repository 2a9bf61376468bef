"""
Usage session model - continuous active time per user login
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..base import Base


class UsageSessionState(str, enum.Enum):
    """Server-side usage session state"""
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class UsageSessionEndReason(str, enum.Enum):
    """How a session reached ENDED"""
    ENDED = "ended"
    ORPHANED = "orphaned"


class UsageSession(Base):
    """Accumulated active-usage time reported by a user's browser context"""
    __tablename__ = "usage_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    state = Column(String, nullable=False, default=UsageSessionState.RUNNING.value, index=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    segment_started_at = Column(DateTime, nullable=True)  # Start of the current RUNNING segment
    last_heartbeat_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    accumulated_seconds = Column(Integer, nullable=False, default=0)
    ended_at = Column(DateTime, nullable=True)
    end_reason = Column(String, nullable=True)
    date = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    user = relationship("User", back_populates="usage_sessions")
