#!/usr/bin/env python
"""
Expire a user's team trial immediately (QA helper)
Moves the active TRIAL subscription's end date to yesterday; the next
status check performs the actual expiry

Usage:
    python scripts/expire_trial.py --email user@example.com
    python scripts/expire_trial.py --user-id 42
"""
import sys
import logging
from datetime import datetime, timedelta

from creator_subscriptions.db.engine import SessionLocal
from creator_subscriptions.db.models import User, Subscription, SubscriptionStatus

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def find_user(db, email=None, user_id=None):
    if user_id is not None:
        return db.query(User).filter(User.id == user_id).first()
    return db.query(User).filter(User.email == email).first()


def expire_trial(db, email: str = None, user_id: int = None) -> bool:
    user = find_user(db, email=email, user_id=user_id)
    if user is None or user.team_id is None:
        logger.error(f"User {email or user_id} not found or has no team")
        return False

    subscription = db.query(Subscription).filter(
        Subscription.team_id == user.team_id,
        Subscription.is_active.is_(True),
    ).order_by(Subscription.created_at.desc()).first()

    if subscription is None or subscription.status != SubscriptionStatus.TRIAL.value:
        logger.error(f"No active trial for team {user.team_id}")
        return False

    yesterday = datetime.utcnow() - timedelta(days=1)
    logger.info(f"Trial currently ends at {subscription.trial_end_date}")
    subscription.trial_end_date = yesterday
    user.team.trial_ends_at = yesterday
    db.commit()

    logger.info(f"Trial for team {user.team_id} now ended at {yesterday}")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Expire a team trial")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--email', help='Email of a team member')
    target.add_argument('--user-id', type=int, help='ID of a team member')
    args = parser.parse_args()

    db = SessionLocal()
    try:
        ok = expire_trial(db, email=args.email, user_id=args.user_id)
    finally:
        db.close()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
