#!/usr/bin/env python
"""
Put a user's team back into an expired-but-active TRIAL (QA helper)
The latest subscription becomes an active TRIAL that ended yesterday, so
the next status check exercises the expiry path again

Usage:
    python scripts/reactivate_trial.py --email user@example.com
    python scripts/reactivate_trial.py --user-id 42
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


def reactivate_trial(db, email: str = None, user_id: int = None) -> bool:
    user = find_user(db, email=email, user_id=user_id)
    if user is None or user.team_id is None:
        logger.error(f"User {email or user_id} not found or has no team")
        return False

    subscription = db.query(Subscription).filter(
        Subscription.team_id == user.team_id,
    ).order_by(Subscription.created_at.desc()).first()
    if subscription is None:
        logger.error(f"Team {user.team_id} has no subscriptions")
        return False

    for other in db.query(Subscription).filter(
        Subscription.team_id == user.team_id,
        Subscription.id != subscription.id,
        Subscription.is_active.is_(True),
    ).all():
        other.is_active = False

    yesterday = datetime.utcnow() - timedelta(days=1)
    subscription.status = SubscriptionStatus.TRIAL.value
    subscription.is_active = True
    subscription.trial_end_date = yesterday
    user.team.is_trial_active = True
    user.team.trial_ends_at = yesterday
    db.commit()

    logger.info(f"Subscription {subscription.id} reset to TRIAL ending {yesterday}")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Reactivate an expired trial for testing")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--email', help='Email of a team member')
    target.add_argument('--user-id', type=int, help='ID of a team member')
    args = parser.parse_args()

    db = SessionLocal()
    try:
        ok = reactivate_trial(db, email=args.email, user_id=args.user_id)
    finally:
        db.close()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
