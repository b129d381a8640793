#!/usr/bin/env python3
"""
Quick Indexer Status Checker
Run this against a live indexer server to see which endpoints answer.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from runes_diff.errors import SourceUnavailable
from runes_diff.ord_client import OrdClient

BASE_URL = "http://127.0.0.1:8080"


def check_endpoint(name, func, description):
    """Test a single endpoint and report status."""
    try:
        result = func()
        if isinstance(result, dict):
            if 'entries' in result:
                return f"✓ {name}: OK ({len(result['entries'])} items, more={result.get('more')}) - {description}"
            return f"✓ {name}: OK ({len(result)} items) - {description}"
        return f"✓ {name}: OK ({result}) - {description}"
    except SourceUnavailable as e:
        # Truncate long error messages
        error_msg = str(e)
        if len(error_msg) > 80:
            error_msg = error_msg[:77] + "..."
        return f"✗ {name}: {error_msg}"


def main():
    """Check indexer endpoint status."""
    parser = argparse.ArgumentParser(description='Check a runes indexer HTTP API')
    parser.add_argument('--base-url', default=os.environ.get('ORD_BASE_URL', BASE_URL),
                        help=f'Indexer base URL (default: {BASE_URL})')
    parser.add_argument('--rune', help='Also look up one rune by display name')
    args = parser.parse_args()

    print("=" * 80)
    print("RUNES INDEXER STATUS CHECKER")
    print("=" * 80)
    print(f"Target: {args.base_url}")
    print()

    tests = []
    with OrdClient(base_url=args.base_url, timeout=10, max_retries=0) as client:
        tests.append(("Block Height", client.get_block_height, "Latest indexed block"))
        tests.append(("Runes Page 0", lambda: client.get_runes_page(0), "First page of the runes listing"))
        tests.append(("Rune Balances", client.get_rune_balances, "Outpoint balances per rune"))
        if args.rune:
            tests.append(("Rune Lookup", lambda: client.get_rune(args.rune), f"Detail of {args.rune}"))

        results = []
        for name, func, desc in tests:
            result = check_endpoint(name, func, desc)
            print(result)
            results.append((name, result.startswith("✓")))

    print()
    working = sum(1 for _, status in results if status)
    print(f"Working endpoints: {working}/{len(results)}")
    if working < len(results):
        print("   - Is the server running with --index-runes?")
        print("   - Is the port correct?")
    return 0 if working == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
