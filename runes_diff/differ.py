"""
Structural Differ

Strict, order-sensitive comparison of two JSON trees:
- Lists must have the same length and equal elements at every index
- Mappings must have the same keys in the same order, with equal values
- Scalars must be equal and of the same type (1, 1.0 and True all differ)

Only the first divergence is reported (depth-first, left to right), which is
what regression triage needs: the path to look at, and the two values.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

ROOT = '$'


@dataclass(frozen=True)
class DiffResult:
    """Outcome of a comparison. ``path`` is None when the trees are equal."""
    equal: bool
    path: Optional[str] = None
    left: Any = None
    right: Any = None
    reason: Optional[str] = None

    def describe(self) -> str:
        if self.equal:
            return "trees are equal"
        return f"{self.reason} at {self.path}: {self.left!r} vs {self.right!r}"


_EQUAL = DiffResult(equal=True)


def _join_key(path: str, key: Any) -> str:
    return f"{path}.{key}" if path else str(key)


def _join_index(path: str, index: int) -> str:
    return f"{path}[{index}]"


def _kind(value: Any) -> str:
    if isinstance(value, list):
        return 'list'
    if isinstance(value, dict):
        return 'mapping'
    return 'scalar'


def _compare(a: Any, b: Any, path: str) -> DiffResult:
    kind_a, kind_b = _kind(a), _kind(b)
    if kind_a != kind_b:
        return DiffResult(False, path or ROOT, a, b, f"type mismatch ({kind_a} vs {kind_b})")

    if kind_a == 'list':
        if len(a) != len(b):
            return DiffResult(False, path or ROOT, len(a), len(b), "length mismatch")
        for i, (item_a, item_b) in enumerate(zip(a, b)):
            result = _compare(item_a, item_b, _join_index(path, i))
            if not result.equal:
                return result
        return _EQUAL

    if kind_a == 'mapping':
        keys_a, keys_b = list(a), list(b)
        if len(keys_a) != len(keys_b):
            return DiffResult(False, path or ROOT, keys_a, keys_b, "key count mismatch")
        for key_a, key_b in zip(keys_a, keys_b):
            if key_a != key_b:
                return DiffResult(False, path or ROOT, key_a, key_b, "key mismatch")
            result = _compare(a[key_a], b[key_b], _join_key(path, key_a))
            if not result.equal:
                return result
        return _EQUAL

    if type(a) is not type(b) or a != b:
        return DiffResult(False, path or ROOT, a, b, "value mismatch")
    return _EQUAL


def diff(a: Any, b: Any) -> DiffResult:
    """
    Compare two canonical trees.

    Args:
        a: Left tree (lists, dicts with ordered keys, JSON scalars)
        b: Right tree

    Returns:
        DiffResult with ``equal`` and, on divergence, the path of the first
        mismatch, e.g. ``runes[3].outpoints[0].amount``
    """
    return _compare(a, b, '')


# =============================================================================
#  Snapshot Comparison
# =============================================================================

@dataclass
class HeightComparison:
    """Comparison of two run labels at one height."""
    height: int
    result: Optional[DiffResult] = None
    missing: Optional[List[str]] = None
    warnings: Optional[List[str]] = None

    @property
    def equal(self) -> bool:
        return self.result is not None and self.result.equal

    def to_dict(self):
        data = {'height': self.height, 'equal': self.equal}
        if self.missing:
            data['missing'] = self.missing
        if self.result is not None and not self.result.equal:
            data['path'] = self.result.path
            data['reason'] = self.result.reason
            data['left'] = self.result.left
            data['right'] = self.result.right
        if self.warnings:
            data['warnings'] = self.warnings
        return data


def compare_snapshots(
    store: SnapshotStore,
    heights: Iterable[int],
    left_label: str = 'ord',
    right_label: str = 'smartindex'
) -> List[HeightComparison]:
    """
    Diff the stored snapshots of two run labels for each height.

    A height whose file is missing on either side is reported with
    ``missing`` set and no result.
    """
    comparisons = []
    for height in heights:
        missing = [label for label in (left_label, right_label) if not store.exists(label, height)]
        if missing:
            logger.warning(f"Height {height}: no snapshot for {', '.join(missing)}")
            comparisons.append(HeightComparison(height=height, missing=missing))
            continue

        left = store.load(left_label, height)
        right = store.load(right_label, height)
        warnings = []
        for label, loaded in ((left_label, left), (right_label, right)):
            if loaded.legacy:
                warnings.append(f"{label}: legacy bare-array file, zero-valued terms fields were stored as null")
            warnings.extend(f"{label}: {where} unsorted" for where in loaded.unsorted_outpoints)
        result = diff(left.tree, right.tree)
        if result.equal:
            logger.info(f"Height {height}: both states are the same")
        else:
            logger.info(f"Height {height}: {result.describe()}")
        comparisons.append(HeightComparison(height=height, result=result, warnings=warnings or None))
    return comparisons
