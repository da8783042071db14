#!/usr/bin/env python3
"""
Demote tracker entries with no update past the stale threshold.

Applications default to 8 weeks (-> Rejected), proposals to 35 weeks
(-> Declined). Without --execute the affected rows are only counted.

Usage:
    python scripts/mark_stale.py [--profile proposals] [--weeks 10] [--execute]
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import logging
from datetime import timedelta

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def mark_stale(profile_name: str = None, weeks: int = None, dry_run: bool = True) -> dict:
    """
    Run the stale sweep.

    Args:
        profile_name: Tracker profile (default from settings)
        weeks: Threshold override in weeks
        dry_run: If True, count without writing

    Returns:
        Stats dict
    """
    from mailtracker.services.run_context import ConfigurationError, RunContext
    from mailtracker.services.sheets import SheetsTable
    from mailtracker.services.resilience import user_friendly_error
    from mailtracker.services.stale_sweeper import sweep

    try:
        context = RunContext.from_settings(profile_name=profile_name)
        if weeks:
            context.stale_weeks = weeks
        context.validate(require_extractor=False)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"status": "config_error", "error": str(e)}

    if dry_run:
        logger.info(f"DRY RUN - counting {context.profile.name} rows older than "
                    f"{context.stale_weeks} weeks")

    table = SheetsTable(context.spreadsheet_id, context.sheet_tab)
    try:
        count = sweep(table, context.profile, timedelta(weeks=context.stale_weeks), dry_run=dry_run)
    except Exception as e:
        logger.error(f"Stale sweep failed: {user_friendly_error(e)}")
        return {"status": "error", "error": str(e)}

    return {"status": "dry_run" if dry_run else "ok", "demoted": count}


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Mark stale tracker entries')
    parser.add_argument('--profile', choices=['applications', 'proposals'],
                        help='Tracker profile (default: TRACKER_PROFILE)')
    parser.add_argument('--weeks', type=int, help='Override the stale threshold in weeks')
    parser.add_argument('--execute', action='store_true', help='Actually update the sheet')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    result = mark_stale(profile_name=args.profile, weeks=args.weeks, dry_run=not args.execute)
    sys.exit(0 if result["status"] in ("ok", "dry_run") else 1)
