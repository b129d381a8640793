"""
Snapshot Store

Persists snapshots as one JSON file per (run label, height) under
``<states_dir>/<label>-states/<height>.json`` and loads them back as plain
JSON trees for the differ. Key order is preserved in both directions.
"""

import json
import logging
import os
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from .models import Snapshot

logger = logging.getLogger(__name__)

_HEIGHT_FILE = re.compile(r'^(\d+)\.json$')


@dataclass
class LoadedSnapshot:
    """A snapshot file read back from disk."""
    path: Path
    tree: Dict[str, Any]
    legacy: bool = False
    unsorted_outpoints: List[str] = field(default_factory=list)

    @property
    def height(self) -> Any:
        return self.tree.get('height')


def find_unsorted_outpoints(tree: Dict[str, Any]) -> List[str]:
    """
    Return the paths of outpoint lists that are not in canonical order.

    Older balance-first captures did not sort outpoints; such files cannot be
    compared against a sorted capture.
    """
    unsorted = []
    for i, rune in enumerate(tree.get('runes') or []):
        outpoints = rune.get('outpoints') if isinstance(rune, dict) else None
        if not isinstance(outpoints, list):
            continue
        try:
            keys = [(op['hash'], int(op['index'])) for op in outpoints]
        except (KeyError, TypeError, ValueError):
            unsorted.append(f"runes[{i}].outpoints")
            continue
        if keys != sorted(keys):
            unsorted.append(f"runes[{i}].outpoints")
    return unsorted


class SnapshotStore:
    """
    File-backed snapshot storage.

    Writes can be handed to a single background writer with ``write_async``;
    ``flush`` must be called before any diff reads the files back.
    """

    def __init__(self, states_dir: Union[str, Path] = '.'):
        self.states_dir = Path(states_dir)
        self._executor = None
        self._pending: List[Future] = []
        self._lock = threading.Lock()

    def label_dir(self, label: str) -> Path:
        return self.states_dir / f"{label}-states"

    def path_for(self, label: str, height: int) -> Path:
        return self.label_dir(label) / f"{height}.json"

    # ========== Writing ==========

    def write(self, label: str, snapshot: Snapshot) -> Path:
        """Write a snapshot synchronously and atomically."""
        path = self.path_for(label, snapshot.height)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_name(path.name + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot.to_dict(), f, indent=2, ensure_ascii=False)
            f.write('\n')
        os.replace(tmp_path, path)

        logger.info(f"Wrote {label} snapshot for height {snapshot.height} to {path}")
        return path

    def write_async(self, label: str, snapshot: Snapshot) -> Future:
        """Queue a snapshot write on the background writer."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='snapshot-writer')
            future = self._executor.submit(self.write, label, snapshot)
            self._pending.append(future)
        return future

    def flush(self) -> List[Path]:
        """
        Wait for every queued write.

        Returns:
            Paths written since the last flush

        Raises:
            OSError: the first write failure, after all writes have settled
        """
        with self._lock:
            pending, self._pending = self._pending, []

        paths = []
        first_error = None
        for future in pending:
            try:
                paths.append(future.result())
            except OSError as e:
                logger.error(f"Snapshot write failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return paths

    def close(self):
        """Flush pending writes and stop the background writer."""
        try:
            self.flush()
        finally:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ========== Reading ==========

    def list_heights(self, label: str) -> List[int]:
        """Heights with a stored snapshot for ``label``, ascending."""
        directory = self.label_dir(label)
        if not directory.is_dir():
            return []
        heights = []
        for entry in directory.iterdir():
            match = _HEIGHT_FILE.match(entry.name)
            if match:
                heights.append(int(match.group(1)))
        return sorted(heights)

    def exists(self, label: str, height: int) -> bool:
        return self.path_for(label, height).is_file()

    def load(self, label: str, height: int) -> LoadedSnapshot:
        return self.load_path(self.path_for(label, height), height=height)

    def load_path(self, path: Union[str, Path], height: Any = None) -> LoadedSnapshot:
        """
        Read a snapshot file.

        A bare array of runes (the format of early ledger-first captures) is
        wrapped into the ``{height, runes}`` envelope; ``height`` is taken
        from the argument or the file name.
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        legacy = False
        if isinstance(data, list):
            legacy = True
            if height is None:
                match = _HEIGHT_FILE.match(path.name)
                height = int(match.group(1)) if match else None
            logger.warning(
                f"{path} uses the legacy bare-array format; wrapping it for height {height}. "
                f"Terms fields that are 0 on the ledger were stored as null and will differ "
                f"from current captures"
            )
            data = {'height': height, 'runes': data}
        elif not isinstance(data, dict) or 'runes' not in data:
            raise ValueError(f"{path} is not a snapshot file")

        loaded = LoadedSnapshot(path=path, tree=data, legacy=legacy)
        loaded.unsorted_outpoints = find_unsorted_outpoints(data)
        for where in loaded.unsorted_outpoints:
            logger.warning(f"{path}: {where} is not sorted by (hash, index)")
        return loaded
