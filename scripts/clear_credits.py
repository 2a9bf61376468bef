#!/usr/bin/env python
"""
Zero team credits, or reset them to the plan quotas

Usage:
    python scripts/clear_credits.py --all
    python scripts/clear_credits.py --team-id 3 --reset
"""
import sys
import logging

from creator_subscriptions.db.engine import SessionLocal
from creator_subscriptions.services.credit_ledger import CreditLedger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Clear or reset team credits")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--all', action='store_true', help='Zero the credits of every team')
    target.add_argument('--team-id', type=int, help='Only this team')
    parser.add_argument('--reset', action='store_true', help='Reset to plan quotas instead of zero')
    args = parser.parse_args()

    if args.all and args.reset:
        parser.error("--reset requires --team-id")

    db = SessionLocal()
    ledger = CreditLedger(db)
    try:
        if args.all:
            count = ledger.clear_all_credits()
            logger.info(f"Cleared credits of {count} team(s)")
        elif args.reset:
            credits = ledger.reset_credits(args.team_id)
            logger.info(f"Team {args.team_id} credits reset: {credits}")
        else:
            ledger.clear_credits(args.team_id)
            logger.info(f"Team {args.team_id} credits cleared")
    except Exception as e:
        logger.error(f"Clearing credits failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
