#!/usr/bin/env python3
"""
Process one batch of tracker emails.

Reads threads labeled "To Process", reconciles them into the tracker
sheet and relabels finished threads. Without --execute only the resolved
configuration is reported; nothing is read or written.

Usage:
    python scripts/process_emails.py [--profile applications|proposals] [--execute]
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import json
import logging

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def process_emails(profile_name: str = None, dry_run: bool = True) -> dict:
    """
    Run one processing batch.

    Args:
        profile_name: Tracker profile (default from settings)
        dry_run: If True, just report the configuration

    Returns:
        Run summary dict
    """
    from mailtracker.services.extraction import ExtractionPipeline
    from mailtracker.services.extractor_client import GeminiExtractorClient
    from mailtracker.services.gmail import get_gmail_service
    from mailtracker.services.orchestrator import BatchOrchestrator
    from mailtracker.services.resilience import user_friendly_error
    from mailtracker.services.run_context import ConfigurationError, RunContext
    from mailtracker.services.sheets import SheetsTable

    try:
        context = RunContext.from_settings(profile_name=profile_name)
        context.validate()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"status": "config_error", "error": str(e)}

    if dry_run:
        logger.info("DRY RUN - would process one batch with:")
        logger.info(json.dumps(context.to_dict(), indent=2))
        return {"status": "dry_run", "context": context.to_dict()}

    client = GeminiExtractorClient(context.api_key) if context.ai_enabled else None
    pipeline = ExtractionPipeline(context.profile, client, ai_enabled=context.ai_enabled)
    if not context.ai_enabled:
        logger.info("AI extraction disabled; using the fallback parser only")

    orchestrator = BatchOrchestrator(
        context,
        mail=get_gmail_service(),
        table=SheetsTable(context.spreadsheet_id, context.sheet_tab),
        pipeline=pipeline,
    )

    try:
        summary = orchestrator.run()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"status": "config_error", "error": str(e)}
    except Exception as e:
        logger.error(f"Processing run failed: {user_friendly_error(e)}")
        return {"status": "error", "error": str(e)}
    finally:
        if client is not None:
            client.close()

    logger.info(f"\n=== {context.profile.display_name} Run ===")
    for key, value in summary.to_dict().items():
        logger.info(f"  {key}: {value}")
    return {"status": "ok", **summary.to_dict()}


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Process tracker emails into the sheet')
    parser.add_argument('--profile', choices=['applications', 'proposals'],
                        help='Tracker profile (default: TRACKER_PROFILE)')
    parser.add_argument('--execute', action='store_true', help='Actually process emails')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    result = process_emails(profile_name=args.profile, dry_run=not args.execute)
    sys.exit(0 if result["status"] in ("ok", "dry_run") else 1)
