"""
Usage Session Service - server-side store for active-usage time
Sessions are driven by client start/pause/resume/heartbeat/end signals
"""
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Callable, List
from dataclasses import dataclass
import logging

from ..db.models import User, UsageSession, UsageSessionState, UsageSessionEndReason
from ..exceptions import NotFoundError

logger = logging.getLogger(__name__)

OPEN_STATES = [UsageSessionState.RUNNING.value, UsageSessionState.PAUSED.value]


def format_duration(seconds: int) -> str:
    """Format seconds as "1h 2m 3s", "2m 3s" or "3s" """
    seconds = int(seconds or 0)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    remaining = seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {remaining}s"
    if minutes > 0:
        return f"{minutes}m {remaining}s"
    return f"{remaining}s"


@dataclass
class SessionEndResult:
    """Outcome of ending a user's open session"""
    session: Optional[UsageSession]
    duration_seconds: int
    total_day_seconds: int


class UsageSessionService:
    """
    Persists usage sessions and the time they accumulate

    A running segment is only credited up to ``last_heartbeat_at`` plus the
    heartbeat grace period; time the server never heard about is not counted.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow,
                 heartbeat_grace_seconds: Optional[int] = None,
                 orphaned_max_age_hours: Optional[int] = None):
        """
        Initialize the session store

        Args:
            db: Database session
            clock: Returns the current UTC time
            heartbeat_grace_seconds: Credit allowed past the last heartbeat
                (defaults to config.HEARTBEAT_GRACE_SECONDS)
            orphaned_max_age_hours: Silence after which an open session is
                considered abandoned (defaults to config.ORPHANED_SESSION_MAX_AGE_HOURS)
        """
        from ..config import config

        self.db = db
        self.clock = clock
        self.heartbeat_grace = timedelta(seconds=(
            heartbeat_grace_seconds if heartbeat_grace_seconds is not None else config.HEARTBEAT_GRACE_SECONDS
        ))
        self.orphaned_max_age = timedelta(hours=(
            orphaned_max_age_hours if orphaned_max_age_hours is not None else config.ORPHANED_SESSION_MAX_AGE_HOURS
        ))

    def _open_session(self, user_id: int, session_id: Optional[int] = None) -> Optional[UsageSession]:
        query = self.db.query(UsageSession).filter(
            UsageSession.user_id == user_id,
            UsageSession.state.in_(OPEN_STATES),
        )
        if session_id is not None:
            query = query.filter(UsageSession.id == session_id)
        return query.order_by(UsageSession.started_at.desc(), UsageSession.id.desc()).first()

    def _segment_seconds(self, session: UsageSession, until: datetime) -> int:
        """Credited seconds of the current RUNNING segment, capped by the last heartbeat"""
        if session.state != UsageSessionState.RUNNING.value or session.segment_started_at is None:
            return 0
        end = min(until, session.last_heartbeat_at + self.heartbeat_grace)
        return max(0, int((end - session.segment_started_at).total_seconds()))

    def _close(self, session: UsageSession, ended_at: datetime, reason: UsageSessionEndReason, until: datetime):
        session.accumulated_seconds = (session.accumulated_seconds or 0) + self._segment_seconds(session, until)
        session.state = UsageSessionState.ENDED.value
        session.segment_started_at = None
        session.ended_at = ended_at
        session.end_reason = reason.value

    def _mark_running(self, session: UsageSession, now: datetime):
        """Put the session in RUNNING as of ``now`` without crediting any silent gap"""
        if session.state == UsageSessionState.PAUSED.value:
            session.state = UsageSessionState.RUNNING.value
            session.segment_started_at = now
        elif now > session.last_heartbeat_at + self.heartbeat_grace:
            # A gap longer than the grace period is not credited; start a new segment
            session.accumulated_seconds = (session.accumulated_seconds or 0) + self._segment_seconds(session, now)
            session.segment_started_at = now
        session.last_heartbeat_at = now

    def _create(self, user_id: int, now: datetime) -> UsageSession:
        session = UsageSession(
            user_id=user_id,
            state=UsageSessionState.RUNNING.value,
            started_at=now,
            segment_started_at=now,
            last_heartbeat_at=now,
            accumulated_seconds=0,
            date=now,
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Started usage session {session.id} for user {user_id}")
        return session

    def _is_abandoned(self, session: UsageSession, now: datetime) -> bool:
        return session.last_heartbeat_at < now - self.orphaned_max_age

    def start(self, user_id: int) -> UsageSession:
        """
        Return the user's open session, or create one

        A paused session is resumed; one silent for longer than the orphan
        age is closed and replaced.
        """
        now = self.clock()
        session = self._open_session(user_id)

        if session is not None and self._is_abandoned(session, now):
            self._close(session, session.last_heartbeat_at, UsageSessionEndReason.ORPHANED, session.last_heartbeat_at)
            self.db.commit()
            logger.info(f"Closed abandoned usage session {session.id} for user {user_id}")
            session = None

        if session is None:
            return self._create(user_id, now)

        if session.state == UsageSessionState.PAUSED.value:
            self._mark_running(session, now)
            self.db.commit()
        return session

    def pause(self, user_id: int, session_id: Optional[int] = None) -> UsageSession:
        """
        Fold the running segment into the total and pause the session

        Raises:
            NotFoundError: If the user has no open session
        """
        now = self.clock()
        session = self._open_session(user_id, session_id)
        if session is None:
            raise NotFoundError("Usage session", session_id or f"open session of user {user_id}")

        if session.state == UsageSessionState.RUNNING.value:
            session.accumulated_seconds = (session.accumulated_seconds or 0) + self._segment_seconds(session, now)
            session.state = UsageSessionState.PAUSED.value
            session.segment_started_at = None
            session.last_heartbeat_at = now
            self.db.commit()
            logger.debug(f"Paused usage session {session.id} at {session.accumulated_seconds}s")
        return session

    def resume(self, user_id: int, session_id: Optional[int] = None) -> UsageSession:
        """Resume the paused session; a new session is started if it already ended"""
        now = self.clock()
        session = self._open_session(user_id, session_id)
        if session is None and session_id is not None:
            session = self._open_session(user_id)

        if session is None or self._is_abandoned(session, now):
            return self.start(user_id)

        self._mark_running(session, now)
        self.db.commit()
        return session

    def heartbeat(self, user_id: int) -> UsageSession:
        """
        Extend the running session's credited time

        A paused session is put back in RUNNING, including one paused by a
        signal that reached the server after the client had resumed.

        Raises:
            NotFoundError: If the user has no open session
        """
        now = self.clock()
        session = self._open_session(user_id)
        if session is None:
            raise NotFoundError("Usage session", f"open session of user {user_id}")

        if session.state == UsageSessionState.PAUSED.value:
            logger.info(f"Heartbeat resumed paused usage session {session.id} for user {user_id}")
        self._mark_running(session, now)
        self.db.commit()
        return session

    def elapsed_seconds(self, session: UsageSession) -> int:
        """Total credited seconds of a session as of now"""
        return (session.accumulated_seconds or 0) + self._segment_seconds(session, self.clock())

    def end(self, user_id: int) -> SessionEndResult:
        """Close the user's open session and report its duration and the day's total"""
        now = self.clock()
        session = self._open_session(user_id)
        duration = 0

        if session is not None:
            self._close(session, now, UsageSessionEndReason.ENDED, now)
            self.db.commit()
            duration = session.accumulated_seconds
            logger.info(f"Ended usage session {session.id} for user {user_id}: {format_duration(duration)}")

        return SessionEndResult(
            session=session,
            duration_seconds=duration,
            total_day_seconds=self.total_for_day(user_id, now),
        )

    def total_for_day(self, user_id: int, day: datetime) -> int:
        """Seconds accumulated by the user's ended sessions dated on ``day``"""
        day_start = day.replace(hour=0, minute=0, second=0, microsecond=0)
        sessions = self.db.query(UsageSession).filter(
            UsageSession.user_id == user_id,
            UsageSession.state == UsageSessionState.ENDED.value,
            UsageSession.date >= day_start,
            UsageSession.date < day_start + timedelta(days=1),
        ).all()
        return sum(session.accumulated_seconds or 0 for session in sessions)

    def cleanup_orphaned(self, max_age_hours: Optional[int] = None) -> int:
        """
        Close open sessions that have not been heard from within the orphan age

        Time is credited only up to each session's last heartbeat.

        Returns:
            Number of sessions closed
        """
        now = self.clock()
        max_age = timedelta(hours=max_age_hours) if max_age_hours is not None else self.orphaned_max_age
        cutoff = now - max_age

        orphaned = self.db.query(UsageSession).filter(
            UsageSession.state.in_(OPEN_STATES),
            UsageSession.last_heartbeat_at < cutoff,
        ).all()

        for session in orphaned:
            self._close(session, session.last_heartbeat_at, UsageSessionEndReason.ORPHANED, session.last_heartbeat_at)

        if orphaned:
            self.db.commit()
            logger.info(f"Cleanup closed {len(orphaned)} orphaned usage session(s)")
        return len(orphaned)

    def stats(self, user_id: Optional[int] = None, start: Optional[datetime] = None,
              end: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Aggregate ended sessions for reporting

        Args:
            user_id: Only this user's sessions
            start: Only sessions dated on or after this time
            end: Only sessions dated on or before this time

        Returns:
            Totals, averages, per-user and per-day rollups and the sessions
        """
        query = self.db.query(UsageSession).filter(UsageSession.state == UsageSessionState.ENDED.value)
        if user_id is not None:
            query = query.filter(UsageSession.user_id == user_id)
        if start is not None:
            query = query.filter(UsageSession.date >= start)
        if end is not None:
            query = query.filter(UsageSession.date <= end)
        sessions: List[UsageSession] = query.order_by(UsageSession.started_at.desc()).all()

        total_sessions = len(sessions)
        total_seconds = sum(session.accumulated_seconds or 0 for session in sessions)
        average_seconds = round(total_seconds / total_sessions) if total_sessions else 0

        user_stats: Dict[int, Dict[str, Any]] = {}
        daily_stats: Dict[str, Dict[str, Any]] = {}
        for session in sessions:
            seconds = session.accumulated_seconds or 0

            entry = user_stats.get(session.user_id)
            if entry is None:
                user: Optional[User] = session.user
                entry = user_stats[session.user_id] = {
                    "user": {
                        "id": session.user_id,
                        "name": user.name if user else None,
                        "email": user.email if user else None,
                    },
                    "total_sessions": 0,
                    "total_time": 0,
                    "average_time": 0,
                }
            entry["total_sessions"] += 1
            entry["total_time"] += seconds
            entry["average_time"] = round(entry["total_time"] / entry["total_sessions"])

            day = session.date.date().isoformat()
            bucket = daily_stats.setdefault(day, {"date": day, "sessions": 0, "total_time": 0, "users": set()})
            bucket["sessions"] += 1
            bucket["total_time"] += seconds
            bucket["users"].add(session.user_id)

        return {
            "total_sessions": total_sessions,
            "total_time_seconds": total_seconds,
            "total_time_formatted": format_duration(total_seconds),
            "average_session_time": average_seconds,
            "average_session_time_formatted": format_duration(average_seconds),
            "user_stats": list(user_stats.values()),
            "daily_stats": [
                {
                    "date": bucket["date"],
                    "sessions": bucket["sessions"],
                    "total_time": bucket["total_time"],
                    "unique_users": len(bucket["users"]),
                }
                for bucket in daily_stats.values()
            ],
            "sessions": [
                {
                    "id": session.id,
                    "user_id": session.user_id,
                    "started_at": session.started_at,
                    "ended_at": session.ended_at,
                    "end_reason": session.end_reason,
                    "duration": session.accumulated_seconds or 0,
                    "duration_formatted": format_duration(session.accumulated_seconds or 0),
                }
                for session in sessions
            ],
        }
