#!/usr/bin/env python3
"""
Compare Captured Runes States

Compares the snapshots of two run labels (by default ord vs smartindex) height
by height and reports the first divergent path for each height that differs.

Usage:
    python scripts/diff_states.py --height 840000
    python scripts/diff_states.py --from-height 840000 --to-height 840010
    python scripts/diff_states.py --all --left ord --right smartindex
    python scripts/diff_states.py --files ord-states/840000.json other/840000.json

Exit codes:
    0 = All compared heights are equal
    1 = At least one height diverges
    2 = A snapshot is missing on one side
"""

import argparse
import json
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from runes_diff.differ import compare_snapshots, diff
from runes_diff.snapshot_store import SnapshotStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def diff_files(args) -> int:
    """Compare two snapshot files directly."""
    store = SnapshotStore()
    left = store.load_path(args.files[0])
    right = store.load_path(args.files[1])
    result = diff(left.tree, right.tree)

    if args.json:
        print(json.dumps({'equal': result.equal, 'path': result.path, 'reason': result.reason,
                          'left': result.left, 'right': result.right}, indent=2, default=str))
    elif result.equal:
        print("Both states are the same")
    else:
        print(f"Mismatch: {result.describe()}")
    return 0 if result.equal else 1


def diff_labels(args) -> int:
    """Compare two run labels over the selected heights."""
    store = SnapshotStore(args.states_dir)

    if args.all:
        heights = sorted(set(store.list_heights(args.left)) | set(store.list_heights(args.right)))
    elif args.height is not None:
        heights = [args.height]
    else:
        heights = list(range(args.from_height, args.to_height + 1))

    comparisons = compare_snapshots(store, heights, left_label=args.left, right_label=args.right)

    if args.json:
        print(json.dumps([c.to_dict() for c in comparisons], indent=2, default=str))
    else:
        print("=" * 78)
        print(f"  {args.left} vs {args.right}: {len(comparisons)} heights")
        print("=" * 78)
        for comparison in comparisons:
            if comparison.missing:
                print(f"  {comparison.height}: MISSING ({', '.join(comparison.missing)})")
            elif comparison.equal:
                print(f"  {comparison.height}: same")
            else:
                print(f"  {comparison.height}: DIFFER - {comparison.result.describe()}")
            for warning in comparison.warnings or []:
                print(f"      warning: {warning}")

    if any(c.missing for c in comparisons):
        return 2
    return 0 if all(c.equal for c in comparisons) else 1


def main():
    parser = argparse.ArgumentParser(
        description='Compare captured runes indexer states',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    selection = parser.add_mutually_exclusive_group(required=True)
    selection.add_argument('--height', type=int, help='Compare one height')
    selection.add_argument('--from-height', type=int, help='First height of a range (inclusive)')
    selection.add_argument('--all', action='store_true', help='Compare every height stored for either label')
    selection.add_argument('--files', nargs=2, metavar=('LEFT', 'RIGHT'), help='Compare two snapshot files')
    parser.add_argument('--to-height', type=int, help='Last height of a range (inclusive)')

    parser.add_argument('--left', default='ord', help='Left run label (default: ord)')
    parser.add_argument('--right', default='smartindex', help='Right run label (default: smartindex)')
    parser.add_argument('--states-dir', default=os.environ.get('STATES_DIR', '.'),
                        help='Directory holding <label>-states/ (default: STATES_DIR or .)')
    parser.add_argument('--json', action='store_true', help='Machine-readable output')

    args = parser.parse_args()
    if args.from_height is not None and args.to_height is None:
        parser.error('--from-height requires --to-height')
    if args.from_height is not None and args.to_height < args.from_height:
        parser.error(f'--to-height {args.to_height} is below --from-height {args.from_height}')

    try:
        if args.files:
            return diff_files(args)
        return diff_labels(args)
    except (OSError, ValueError) as e:
        logger.error(f"Could not compare states: {e}")
        return 2


if __name__ == '__main__':
    sys.exit(main())
