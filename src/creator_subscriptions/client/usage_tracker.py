"""
Usage session tracker - client-side state machine for active-usage time

Driven by the host environment's signals (authentication, visibility,
unload, logout). Network failures never block a transition.
"""
import asyncio
import enum
import logging
from typing import Optional, Callable

from ..exceptions import TransientNetworkError
from .session_api import SessionApi

logger = logging.getLogger(__name__)


class TrackerState(str, enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


class UsageSessionTracker:
    """
    Opens, pauses, resumes and closes the user's usage session

    IDLE -> RUNNING on authentication, RUNNING <-> PAUSED on visibility
    changes, any state -> ENDED on logout or final unload. While RUNNING a
    heartbeat is sent every ``heartbeat_interval`` seconds.
    """

    def __init__(self, api: SessionApi, is_authenticated: Callable[[], bool],
                 heartbeat_interval: Optional[float] = None):
        """
        Initialize tracker

        Args:
            api: Session endpoints client
            is_authenticated: Returns whether a user is currently signed in
            heartbeat_interval: Seconds between heartbeats (defaults to config.HEARTBEAT_INTERVAL_SECONDS)
        """
        if heartbeat_interval is None:
            from ..config import config
            heartbeat_interval = config.HEARTBEAT_INTERVAL_SECONDS

        self.api = api
        self.is_authenticated = is_authenticated
        self.heartbeat_interval = heartbeat_interval
        self.state = TrackerState.IDLE
        self.session_id: Optional[int] = None
        self._tracking = False
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._transition_lock = asyncio.Lock()

    @property
    def is_tracking(self) -> bool:
        return self._tracking

    async def on_authenticated(self) -> None:
        """Start tracking; repeated calls while tracking are ignored"""
        if self._tracking or not self.is_authenticated():
            return

        self._tracking = True
        self.state = TrackerState.RUNNING
        try:
            self.session_id = await self.api.start()
            logger.info(f"Usage session {self.session_id} started")
        except TransientNetworkError as e:
            logger.warning(f"Could not start usage session, retrying on next heartbeat: {e}")
        self._start_heartbeat()

    async def on_visibility_change(self, hidden: bool) -> None:
        """
        Pause when the page is hidden, resume when it is shown again

        Transitions run one at a time, so a resume is only sent once the
        preceding pause has been answered.
        """
        async with self._transition_lock:
            if hidden:
                await self.pause()
            else:
                await self.resume()

    async def pause(self) -> None:
        """RUNNING -> PAUSED"""
        if self.state != TrackerState.RUNNING:
            return
        self._stop_heartbeat()
        self.state = TrackerState.PAUSED
        if self.session_id is None:
            return
        try:
            accumulated = await self.api.pause(self.session_id)
            logger.debug(f"Usage session {self.session_id} paused at {accumulated}s")
        except TransientNetworkError as e:
            logger.warning(f"Could not pause usage session {self.session_id}: {e}")

    async def resume(self) -> None:
        """PAUSED -> RUNNING"""
        if self.state != TrackerState.PAUSED or not self.is_authenticated():
            return

        self.state = TrackerState.RUNNING
        if self.session_id is not None:
            try:
                self.session_id = await self.api.resume(self.session_id)
            except TransientNetworkError as e:
                logger.warning(f"Could not resume usage session {self.session_id}: {e}")
        self._start_heartbeat()

    def on_unload(self) -> None:
        """
        Page teardown: nothing can be awaited here

        The session is paused server-side with a fire-and-forget signal, so
        a reload picks it up again on the next start.
        """
        if self.state == TrackerState.RUNNING:
            self.api.notify_best_effort("pause", self.session_id)
        self._finish()

    async def on_logout(self) -> None:
        """Close the session and stop all timers"""
        if not self._tracking and self.state in (TrackerState.IDLE, TrackerState.ENDED):
            return

        self._stop_heartbeat()
        try:
            result = await self.api.end()
            logger.info(f"Usage session {self.session_id} ended after {result.get('duration')}s")
        except TransientNetworkError as e:
            logger.warning(f"Could not end usage session {self.session_id}: {e}")
        self._finish()

    def _finish(self) -> None:
        self._stop_heartbeat()
        self.state = TrackerState.ENDED
        self.session_id = None
        self._tracking = False

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)

            # Self-cancel once signed out or no longer running
            if not self.is_authenticated() or self.state != TrackerState.RUNNING:
                logger.debug("Heartbeat stopped: tracker no longer running")
                self._heartbeat_task = None
                return

            try:
                if self.session_id is None:
                    self.session_id = await self.api.start()
                else:
                    await self.api.heartbeat()
            except TransientNetworkError as e:
                logger.warning(f"Usage heartbeat failed: {e}")

    async def close(self) -> None:
        """Cancel the heartbeat task and wait for it to finish"""
        task = self._heartbeat_task
        self._stop_heartbeat()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
