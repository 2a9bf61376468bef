#!/usr/bin/env python
"""
Print a user's team subscription status as the API would resolve it

Usage:
    python scripts/check_subscription_status.py --email user@example.com
"""
import sys
import json
import logging

from creator_subscriptions.db.engine import SessionLocal
from creator_subscriptions.db.models import User, Subscription
from creator_subscriptions.services.subscription_service import SubscriptionStatusResolver

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Check team subscription status")
    parser.add_argument('--email', required=True, help='Email of a team member')
    args = parser.parse_args()

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == args.email).first()
        if user is None or user.team_id is None:
            logger.error(f"User {args.email} not found or has no team")
            sys.exit(1)

        history = db.query(Subscription).filter(
            Subscription.team_id == user.team_id
        ).order_by(Subscription.created_at.desc()).all()
        logger.info(f"Team {user.team_id} ({user.team.name}) has {len(history)} subscription(s)")
        for subscription in history:
            logger.info(
                f"  #{subscription.id} {subscription.plan.name} {subscription.status} "
                f"active={subscription.is_active} trial_end={subscription.trial_end_date}"
            )

        status = SubscriptionStatusResolver(db).resolve(user.team_id)
        print(json.dumps(status.to_dict(), indent=2, default=str))
    finally:
        db.close()


if __name__ == "__main__":
    main()
