#!/usr/bin/env python3
"""
Newsletter maintenance from the command line.

Usage:
    # Create tables and the default topics/template
    python newsletter_admin.py --seed

    # Start sending a campaign (the running app's worker delivers it)
    python newsletter_admin.py --send 12

    # Subscriber statistics
    python newsletter_admin.py --stats
"""

import argparse
import os
import sys

# Add parent directory to path to import backend modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from newsdesk.core.exceptions import NewsdeskError
from newsdesk.core.logging import setup_logging
from newsdesk.db.session import SessionLocal, init_db
from newsdesk.services.campaign_service import send_campaign_now
from newsdesk.services.newsletter_service import get_statistics, seed_defaults


def seed() -> bool:
    """Create tables and default newsletter data"""
    init_db()
    db = SessionLocal()
    try:
        created = seed_defaults(db)
        print(f"✅ Seeded {created['topics']} topics and {created['templates']} templates")
        return True
    finally:
        db.close()


def send(campaign_id: int) -> bool:
    """Move a campaign into sending and enqueue its dispatch task"""
    db = SessionLocal()
    try:
        task_id = send_campaign_now(campaign_id, db)
        print(f"✅ Campaign {campaign_id} is sending (task {task_id})")
        return True
    except NewsdeskError as e:
        print(f"❌ {e.message}")
        return False
    finally:
        db.close()


def stats() -> bool:
    db = SessionLocal()
    try:
        for key, value in get_statistics(db).items():
            print(f"{key:>14}: {value}")
        return True
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Newsletter maintenance")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--seed", action="store_true", help="Create tables and default topics/template")
    group.add_argument("--send", type=int, metavar="CAMPAIGN_ID", help="Start sending a campaign now")
    group.add_argument("--stats", action="store_true", help="Print subscriber statistics")
    args = parser.parse_args()

    setup_logging()
    if args.seed:
        ok = seed()
    elif args.send is not None:
        ok = send(args.send)
    else:
        ok = stats()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
