#!/usr/bin/env python3
"""
Capture Runes Indexer States

Drives an indexer binary through index-update/serve cycles for a range of
heights and writes one canonical snapshot per height to
<states-dir>/<label>-states/<height>.json.

Usage:
    # Capture a single height with the reference indexer
    python scripts/capture_states.py --height 840000

    # Capture a range with a candidate build
    python scripts/capture_states.py --from-height 840000 --to-height 840010 \\
        --label smartindex --executable /opt/smartindex/bin/ord

    # Use the balance-first retrieval mode with 16 parallel fetches
    python scripts/capture_states.py --height 840000 --mode balance-first --max-workers 16

Environment variables (a .env file is honoured):
    BITCOIN_RPC_URL, BITCOIN_RPC_USERNAME, BITCOIN_RPC_PASSWORD
    ORD_EXECUTABLE_PATH - Indexer binary
    ORD_DIR_PATH - Indexer data directory
    ORD_HOST, ORD_PORT - Where the indexer server listens (default: http://127.0.0.1, 8080)
    RUN_LABEL, STATES_DIR, RETRIEVAL_MODE, READY_TIMEOUT_SECONDS, SHUTDOWN_TIMEOUT_SECONDS

Exit codes:
    0 = All heights captured
    1 = A height failed (later heights were not attempted)
    2 = Invalid configuration
"""

import argparse
import json
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from runes_diff.capture_pipeline import CapturePipeline
from runes_diff.config import VerifierConfig
from runes_diff.errors import ConfigError
from runes_diff.events import LoggingObserver
from runes_diff.snapshot_builder import RETRIEVAL_MODES

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def get_config(args) -> VerifierConfig:
    """Build configuration from environment and command line args."""
    return VerifierConfig.from_env(
        env_file=args.env_file,
        ord_executable_path=args.executable,
        ord_dir_path=args.data_dir,
        ord_port=args.port,
        run_label=args.label,
        states_dir=args.states_dir,
        retrieval_mode=args.mode,
        strict=True if args.strict else None,
        ready_timeout_seconds=args.ready_timeout,
        max_workers=args.max_workers,
    )


def run_capture(args) -> int:
    """Run the capture pipeline."""
    config = get_config(args)
    from_height = args.height if args.height is not None else args.from_height
    to_height = args.height if args.height is not None else args.to_height

    logger.info("=" * 50)
    logger.info("Runes Indexer State Capture")
    logger.info("=" * 50)
    logger.info(f"Label: {config.run_label}")
    logger.info(f"Heights: {from_height}..{to_height}")
    logger.info(f"Retrieval mode: {config.retrieval_mode}")
    logger.info(f"States dir: {config.states_dir}")

    observer = LoggingObserver(output_level=logging.INFO if args.verbose else logging.DEBUG)
    with CapturePipeline(config, observer=observer) as pipeline:
        stats = pipeline.run(from_height, to_height)

    logger.info("")
    logger.info("=" * 50)
    logger.info("Results")
    logger.info("=" * 50)
    logger.info(f"Success: {stats.success}")
    logger.info(f"Heights captured: {len(stats.heights_captured)}")
    if stats.rejected_runes:
        logger.warning(f"Rejected runes: {len(stats.rejected_runes)}")
    if stats.errors:
        logger.error(f"Errors: {stats.errors}")

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2, default=str))

    return 0 if stats.success else 1


def main():
    parser = argparse.ArgumentParser(
        description='Capture canonical runes ledger states from an indexer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    heights = parser.add_mutually_exclusive_group(required=True)
    heights.add_argument('--height', type=int, help='Capture a single height')
    heights.add_argument('--from-height', type=int, help='First height of a range (inclusive)')
    parser.add_argument('--to-height', type=int, help='Last height of a range (inclusive)')

    parser.add_argument('--label', help='Run label, e.g. ord or smartindex (default: RUN_LABEL or ord)')
    parser.add_argument('--executable', help='Indexer binary (default: ORD_EXECUTABLE_PATH)')
    parser.add_argument('--data-dir', help='Indexer data directory (default: ORD_DIR_PATH)')
    parser.add_argument('--port', type=int, help='Indexer HTTP port (default: ORD_PORT or 8080)')
    parser.add_argument('--states-dir', help='Directory holding <label>-states/ (default: STATES_DIR or .)')
    parser.add_argument('--mode', choices=RETRIEVAL_MODES, help='Retrieval mode (default: ledger-first)')
    parser.add_argument('--max-workers', type=int, help='Parallel rune fetches in balance-first mode (default: 8)')
    parser.add_argument('--ready-timeout', type=float, help='Seconds to wait for the server to reach the height')
    parser.add_argument('--strict', action='store_true', help='Abort on undecodable rune records')
    parser.add_argument('--env-file', help='Path to a .env file')
    parser.add_argument('--json', action='store_true', help='Print run statistics as JSON')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show indexer output')

    args = parser.parse_args()
    if args.from_height is not None and args.to_height is None:
        parser.error('--from-height requires --to-height')
    if args.from_height is not None and args.to_height < args.from_height:
        parser.error(f'--to-height {args.to_height} is below --from-height {args.from_height}')

    try:
        return run_capture(args)
    except ConfigError as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
