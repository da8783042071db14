#!/usr/bin/env python3
"""
Authenticate the Google account used by the mail tracker.

Runs the OAuth flow once (Gmail label changes and spreadsheet access);
the saved token refreshes automatically afterwards.

Usage:
    python scripts/authenticate_google.py [--status] [--revoke]
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings
from mailtracker.services.google_auth import GoogleAuthService, GoogleAccount


def check_spreadsheet(spreadsheet_id: str) -> None:
    """Print the configured spreadsheet's title and tabs, or why it can't be read."""
    from mailtracker.services.resilience import user_friendly_error
    from mailtracker.services.sheets import get_sheets_service

    try:
        info = get_sheets_service().get_spreadsheet_info(spreadsheet_id)
    except Exception as e:
        print(f"  Spreadsheet not accessible: {user_friendly_error(e)}")
        return
    print(f"  Spreadsheet: {info['title']}")
    print(f"  Tabs: {', '.join(info['sheets']) or '(none)'}")


def main():
    parser = argparse.ArgumentParser(
        description="Authenticate the Google account for the mail tracker"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Check authentication status without authenticating"
    )
    parser.add_argument(
        "--revoke",
        action="store_true",
        help="Delete the saved token"
    )
    args = parser.parse_args()

    service = GoogleAuthService(
        credentials_path=str(settings.google_credentials_path),
        token_path=str(settings.google_token_path),
        account_type=GoogleAccount.PERSONAL,
    )

    if args.status:
        print("\nAuthentication Status:")
        print("-" * 40)
        if not service.credentials_path.exists():
            print(f"  No credentials file at {service.credentials_path}")
        elif service.is_authenticated:
            print("  Authenticated")
            if settings.spreadsheet_id:
                check_spreadsheet(settings.spreadsheet_id)
        else:
            print("  Not authenticated")
        return

    if args.revoke:
        service.revoke_token()
        print(f"Token removed: {service.token_path}")
        return

    print("\nMail Tracker Google Authentication")
    print("=" * 40)

    if not service.credentials_path.exists():
        print(f"  ERROR: Credentials file not found at {service.credentials_path}")
        sys.exit(1)

    try:
        print("  Opening browser for authentication...")
        print("  (Please authorize in the browser window)")
        service.get_credentials()
        print("  SUCCESS: account authenticated!")
        print(f"  Token saved to: {service.token_path}")
    except Exception as e:
        print(f"  ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
