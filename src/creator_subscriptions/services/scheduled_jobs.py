"""
Scheduled Jobs Service
Background sweeps for trial expiry and abandoned usage sessions
"""
import logging
from typing import Optional, Callable
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> BackgroundScheduler:
    """
    Get or create the background scheduler instance

    Returns:
        BackgroundScheduler instance
    """
    global _scheduler

    if _scheduler is None:
        _scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,
                'misfire_grace_time': 600,
            }
        )

    return _scheduler


def start_scheduler():
    """Register all jobs and start the background scheduler"""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    scheduler.add_job(
        func=run_trial_expiry_job,
        trigger=CronTrigger(minute=0),  # Every hour at minute 0
        id='trial_expiry',
        name='Expire overdue trials',
        replace_existing=True
    )
    logger.info("Registered trial expiry job (hourly)")

    scheduler.add_job(
        func=run_orphaned_session_cleanup_job,
        trigger=CronTrigger(minute='*/30'),
        id='orphaned_session_cleanup',
        name='Close orphaned usage sessions',
        replace_existing=True
    )
    logger.info("Registered orphaned usage session cleanup job (every 30 minutes)")

    scheduler.start()
    logger.info("Background scheduler started")


def stop_scheduler():
    """Stop the background scheduler"""
    scheduler = get_scheduler()

    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")


def run_trial_expiry_job(session_factory: Optional[Callable] = None) -> int:
    """
    Move every overdue TRIAL subscription to EXPIRED and downgrade its team

    Returns:
        Number of subscriptions expired
    """
    from .subscription_service import SubscriptionService

    if session_factory is None:
        from ..db.engine import SessionLocal
        session_factory = SessionLocal

    db = session_factory()
    try:
        expired = SubscriptionService(db).expire_overdue_trials()
        logger.info(f"Trial expiry job finished: {expired} subscription(s) expired")
        return expired
    except Exception as e:
        db.rollback()
        logger.error(f"Trial expiry job failed: {e}", exc_info=True)
        raise
    finally:
        db.close()


def run_orphaned_session_cleanup_job(session_factory: Optional[Callable] = None) -> int:
    """
    Close usage sessions whose client stopped reporting

    Returns:
        Number of sessions closed
    """
    from .usage_session_service import UsageSessionService

    if session_factory is None:
        from ..db.engine import SessionLocal
        session_factory = SessionLocal

    db = session_factory()
    try:
        closed = UsageSessionService(db).cleanup_orphaned()
        logger.info(f"Orphaned session cleanup finished: {closed} session(s) closed")
        return closed
    except Exception as e:
        db.rollback()
        logger.error(f"Orphaned session cleanup failed: {e}", exc_info=True)
        raise
    finally:
        db.close()
