"""
Differential verification of Bitcoin Runes indexers.

Captures canonical rune ledger snapshots from an indexer at chosen heights and
compares snapshots from two indexer builds for strict structural equality.
"""

from .capture_pipeline import CapturePipeline, CaptureStats
from .config import VerifierConfig
from .differ import DiffResult, compare_snapshots, diff
from .lifecycle import IndexerController
from .ord_client import OrdClient
from .rune_name import decode_spaced_rune, format_spaced_rune, rune_name, rune_number
from .snapshot_builder import BalanceFirstSource, LedgerFirstSource, SnapshotBuilder
from .snapshot_store import SnapshotStore

__version__ = "0.1.0"

__all__ = [
    "BalanceFirstSource",
    "CapturePipeline",
    "CaptureStats",
    "DiffResult",
    "IndexerController",
    "LedgerFirstSource",
    "OrdClient",
    "SnapshotBuilder",
    "SnapshotStore",
    "VerifierConfig",
    "compare_snapshots",
    "decode_spaced_rune",
    "diff",
    "format_spaced_rune",
    "rune_name",
    "rune_number",
]
