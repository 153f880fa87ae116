#!/usr/bin/env python
"""
Run Engine
Cron entry point: one generate, sweep or report pass over all users (or one)

Examples:
    python scripts/run_engine.py generate
    python scripts/run_engine.py sweep --user-id 3
    python scripts/run_engine.py generate --date 2026-10-20

Suggested crontab: generate shortly after midnight, sweep every five
minutes (it also queues reminders for doses entering the next hour),
report once a week.
"""

import sys
import os
import json
import asyncio
import argparse
import logging
from datetime import date

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import init_db
from actions.engine_trigger import TriggerMode, TriggerRequest, engine_trigger

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def run_engine(mode: TriggerMode, user_id=None, target_date=None) -> dict:
    """Execute one trigger and return its summary"""
    init_db()
    summary = await engine_trigger.run(
        TriggerRequest(mode=mode, user_id=user_id, target_date=target_date)
    )
    return summary.to_dict()


def main():
    parser = argparse.ArgumentParser(
        description="Run the medication dose engine once"
    )
    parser.add_argument(
        "mode",
        choices=[mode.value for mode in TriggerMode],
        help="generate: create doses and reminders; sweep: detect missed doses; report: weekly reports"
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Process a single user instead of every active user"
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Local date to generate (generate mode only, YYYY-MM-DD)"
    )

    args = parser.parse_args()

    try:
        summary = asyncio.run(run_engine(TriggerMode(args.mode), args.user_id, args.date))
    except LookupError as e:
        logger.error(str(e))
        sys.exit(1)

    print(json.dumps(summary, indent=2))
    if summary["failed_users"]:
        sys.exit(2)


if __name__ == "__main__":
    main()
