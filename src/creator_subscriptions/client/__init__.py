"""
Client-side accounting components: usage session tracking and the trial expiry prompt
"""
from .storage import LocalStorage, InMemoryStorage, JsonFileStorage
from .session_api import SessionApi
from .usage_tracker import UsageSessionTracker, TrackerState
from .trial_modal import TrialExpiryModalController, TrialCheckLocks, ModalState

__all__ = [
    "LocalStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SessionApi",
    "UsageSessionTracker",
    "TrackerState",
    "TrialExpiryModalController",
    "TrialCheckLocks",
    "ModalState",
]
