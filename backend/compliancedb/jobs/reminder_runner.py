"""Overdue training reminder runner.

Intended for cron/Task Scheduler. Each run is one reminder pass; the per-org
debounce window keeps repeated runs from re-notifying the same obligation.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from compliancedb.database import session_scope
from compliancedb.apps.reminders import services as reminder_services


def run(org_id: Optional[str] = None) -> dict:
    with session_scope() as db:
        summary = reminder_services.run_reminder_pass(
            db,
            now=datetime.now(timezone.utc),
            org_id=org_id,
        )
    return summary.as_dict()


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    result = run(os.getenv("REMINDER_ORG_ID") or None)
    print("Reminder pass completed:", result)
