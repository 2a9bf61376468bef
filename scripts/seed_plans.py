#!/usr/bin/env python
"""
Seed the plan catalog from data/plans.yaml (or PLANS_CONFIG_PATH)
Existing plans are left untouched

Usage:
    python scripts/seed_plans.py [--path plans.yaml]
"""
import sys
import logging

from creator_subscriptions.db.engine import SessionLocal, init_db
from creator_subscriptions.services.plan_catalog import PlanCatalog
from creator_subscriptions.config import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Seed plan catalog")
    parser.add_argument('--path', default=config.PLANS_CONFIG_PATH, help='Plan seed YAML file')
    parser.add_argument('--create-tables', action='store_true', help='Create tables first (dev/test only)')
    args = parser.parse_args()

    if args.create_tables:
        init_db()

    db = SessionLocal()
    try:
        created = PlanCatalog(db).seed_from_yaml(args.path)
        if created:
            logger.info(f"Created plans: {', '.join(plan.name for plan in created)}")
        else:
            logger.info("All plans already present; nothing to seed")
    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
