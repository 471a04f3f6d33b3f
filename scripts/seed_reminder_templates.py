#!/usr/bin/env python3
"""Seed the default subscription reminder e-mail templates.

Usage:
    python scripts/seed_reminder_templates.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.db import SessionLocal
from app.services.subscription_reminders import (
    seed_reminder_templates,
    validate_reminder_templates,
)


def seed_templates():
    """Seed reminder templates to database."""
    db = SessionLocal()
    try:
        created = seed_reminder_templates(db)
        for trigger in created:
            print(f"  Created: {trigger}")
        status = validate_reminder_templates(db)
        for trigger in status["existing"]:
            if trigger not in created:
                print(f"  Skipped: {trigger} (already exists)")
        if status["missing"]:
            print(f"  Missing or inactive: {', '.join(status['missing'])}")
        print(f"\nDone! Created: {len(created)}")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    print("Seeding reminder templates...\n")
    seed_templates()
