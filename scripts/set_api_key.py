#!/usr/bin/env python3
"""
Save (or remove) the Gemini API key in the local property store.

GEMINI_API_KEY in the environment or .env still takes precedence.

Usage:
    python scripts/set_api_key.py            # prompts for the key
    python scripts/set_api_key.py --clear
    python scripts/set_api_key.py --status
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import getpass
import logging

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

from mailtracker.services.property_store import GEMINI_API_KEY_PROPERTY, get_property_store


def main():
    parser = argparse.ArgumentParser(description='Manage the stored Gemini API key')
    parser.add_argument('--clear', action='store_true', help='Remove the stored key')
    parser.add_argument('--status', action='store_true', help='Show whether a key is stored')
    args = parser.parse_args()

    store = get_property_store()

    if args.status:
        key = store.get(GEMINI_API_KEY_PROPERTY)
        print(f"Stored key: {'yes (ending ' + key[-4:] + ')' if key else 'no'}")
        return

    if args.clear:
        if store.delete(GEMINI_API_KEY_PROPERTY):
            print("Stored key removed.")
        else:
            print("No stored key.")
        return

    key = getpass.getpass("Gemini API key: ").strip()
    if len(key) < 20:
        logger.error("That does not look like a Gemini API key; nothing saved")
        sys.exit(1)

    store.set(GEMINI_API_KEY_PROPERTY, key)
    print(f"Key saved to {store.storage_path}")


if __name__ == '__main__':
    main()
