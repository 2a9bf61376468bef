"""
Trial expiry prompt controller

Periodically checks the team's subscription status and shows the upgrade
prompt at most once per epoch. An epoch lasts while the same user id stays
the last one seen on the device.
"""
import asyncio
import enum
import inspect
import logging
from typing import Optional, Callable, List, Dict, Any

from ..exceptions import TransientNetworkError
from .session_api import SessionApi
from .storage import LocalStorage, AUTH_TOKEN_KEY, LAST_USER_ID_KEY, modal_dismissed_key

logger = logging.getLogger(__name__)

EXPIRED_REDIRECT = "/planos?expired=true"
PAID_PLAN_ORDER = ["BASIC", "PRO", "ENTERPRISE"]


class ModalState(str, enum.Enum):
    UNCHECKED = "UNCHECKED"
    CHECKING = "CHECKING"
    IDLE = "IDLE"  # Checked; nothing to show
    SHOWN = "SHOWN"
    REDIRECTED = "REDIRECTED"
    DISMISSED_PREVIOUSLY = "DISMISSED_PREVIOUSLY"
    CLOSED = "CLOSED"


class TrialCheckLocks:
    """
    "Check in flight" and "shown this epoch" flags

    Constructed once per application and shared by every controller instance,
    so remounting a controller cannot double-check or re-show the prompt.
    """

    def __init__(self):
        self.check_in_progress = False
        self.shown_this_epoch = False

    def try_begin_check(self) -> bool:
        if self.check_in_progress or self.shown_this_epoch:
            return False
        self.check_in_progress = True
        return True

    def end_check(self):
        self.check_in_progress = False

    def mark_shown(self):
        self.shown_this_epoch = True

    def reset(self):
        logger.debug("Trial check locks reset")
        self.check_in_progress = False
        self.shown_this_epoch = False


def is_expired_trial(status: Dict[str, Any]) -> bool:
    """Status warrants the upgrade prompt: a trial that ran out and blocks access"""
    was_trial = status.get("is_trial") or status.get("trial_ended")
    return bool(was_trial and status.get("is_expired") and not status.get("can_access"))


def order_paid_plans(plans: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop FREE and order BASIC, PRO, ENTERPRISE (unknown plans last)"""
    paid = [plan for plan in plans if plan.get("name") != "FREE"]

    def position(plan):
        name = plan.get("name")
        return PAID_PLAN_ORDER.index(name) if name in PAID_PLAN_ORDER else len(PAID_PLAN_ORDER)

    return sorted(paid, key=position)


class TrialExpiryModalController:
    """Decides when to show, skip or redirect for the trial expiry prompt"""

    def __init__(
        self,
        api: SessionApi,
        storage: LocalStorage,
        locks: TrialCheckLocks,
        navigate: Callable[[str], None],
        show_modal: Callable[[List[Dict[str, Any]]], None],
        logout: Callable[[], Any],
        close_modal: Optional[Callable[[], None]] = None,
        initial_delay: Optional[float] = None,
        interval: Optional[float] = None,
    ):
        """
        Initialize controller

        Args:
            api: API client used for the status and plan endpoints
            storage: Local persisted flags
            locks: The application-wide TrialCheckLocks instance
            navigate: Redirects the user to a path
            show_modal: Displays the prompt with the ordered paid plans
            logout: Signs the user out (may be a coroutine function)
            close_modal: Hides the prompt
            initial_delay: Seconds before the first check (defaults to config)
            interval: Seconds between checks (defaults to config)
        """
        from ..config import config

        self.api = api
        self.storage = storage
        self.locks = locks
        self.navigate = navigate
        self.show_modal = show_modal
        self.logout = logout
        self.close_modal = close_modal
        self.initial_delay = config.TRIAL_CHECK_INITIAL_DELAY_SECONDS if initial_delay is None else initial_delay
        self.interval = config.TRIAL_CHECK_INTERVAL_SECONDS if interval is None else interval

        self.user_id: Optional[str] = None
        self.state = ModalState.UNCHECKED
        self.last_status: Optional[Dict[str, Any]] = None
        self.plans: List[Dict[str, Any]] = []
        self._task: Optional[asyncio.Task] = None

    def _dismissed_key(self) -> Optional[str]:
        return modal_dismissed_key(self.user_id) if self.user_id is not None else None

    def is_dismissed(self) -> bool:
        key = self._dismissed_key()
        return key is not None and self.storage.get(key) == "true"

    def dismiss(self) -> None:
        key = self._dismissed_key()
        if key is not None:
            self.storage.set(key, "true")

    def clear_dismissal_state(self) -> None:
        key = self._dismissed_key()
        if key is not None:
            self.storage.remove(key)
        self.locks.reset()

    def sync_user(self, user_id) -> None:
        """
        Record the signed-in user; a different user than the last one seen
        on this device starts a new epoch
        """
        self.user_id = str(user_id) if user_id is not None else None
        if self.user_id is None:
            return

        previous_user_id = self.storage.get(LAST_USER_ID_KEY)
        if previous_user_id and previous_user_id != self.user_id:
            logger.info("New user detected, resetting trial prompt state")
            self.clear_dismissal_state()
            self.state = ModalState.UNCHECKED
        self.storage.set(LAST_USER_ID_KEY, self.user_id)

    async def load_plans(self) -> List[Dict[str, Any]]:
        if self.plans:
            return self.plans
        try:
            self.plans = order_paid_plans(await self.api.list_plans())
        except TransientNetworkError as e:
            logger.error(f"Failed to load plans: {e}")
        return self.plans

    async def check_subscription_status(self) -> ModalState:
        """
        Run one status check, gated by the shared locks

        Failures leave the state unchanged; the next scheduled check retries.
        """
        if self.user_id is None or not self.locks.try_begin_check():
            return self.state

        previous_state = self.state
        try:
            if not self.storage.get(AUTH_TOKEN_KEY):
                logger.debug("No auth token; skipping subscription check")
                return self.state

            self.state = ModalState.CHECKING
            try:
                status = await self.api.get_subscription_status()
            except TransientNetworkError as e:
                logger.warning(f"Subscription status check failed: {e}")
                self.state = previous_state
                return self.state

            self.last_status = status
            should_show = is_expired_trial(status)

            if should_show and not self.is_dismissed():
                logger.info("Trial expired; showing upgrade prompt")
                self.locks.mark_shown()
                self.state = ModalState.SHOWN
                self.show_modal(await self.load_plans())
            elif should_show:
                logger.info("Trial expired and prompt dismissed before; redirecting")
                self.state = ModalState.DISMISSED_PREVIOUSLY
                self.navigate(EXPIRED_REDIRECT)
            else:
                self.state = ModalState.IDLE
            return self.state
        finally:
            self.locks.end_check()

    def start(self) -> None:
        """Schedule the initial check and the periodic checks"""
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            await self.check_subscription_status()
            await asyncio.sleep(self.interval)

    def _close(self) -> None:
        if self.close_modal is not None:
            self.close_modal()

    async def decide_later(self) -> None:
        """Dismiss the prompt for this user and sign out"""
        logger.info("User chose to decide later; logging out")
        self.dismiss()
        self._close()
        self.state = ModalState.CLOSED
        self.locks.reset()
        self.stop()
        result = self.logout()
        if inspect.isawaitable(result):
            await result

    def view_plans(self) -> None:
        self.dismiss()
        self._close()
        self.state = ModalState.REDIRECTED
        self.navigate(EXPIRED_REDIRECT)

    def subscribe(self, plan_name: str) -> None:
        logger.info(f"User selected plan {plan_name}")
        self._close()
        self.state = ModalState.REDIRECTED
        self.navigate(f"{EXPIRED_REDIRECT}&selected={plan_name}")
