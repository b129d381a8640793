"""
Capture Pipeline for Runes Indexer States

Orchestrates captures over a range of block heights:
1. Run the index-update/serve/capture cycle for each height in order
2. Queue each snapshot for writing under the run label
3. Stop at the first failing height instead of skipping ahead
4. Wait for every queued write before reporting
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import VerifierConfig
from .errors import RunesDiffError
from .events import Observer
from .lifecycle import IndexerController
from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CaptureStats:
    """Statistics from a capture run."""
    run_label: str = ""
    started_at: str = ""
    completed_at: str = ""
    from_height: Optional[int] = None
    to_height: Optional[int] = None
    heights_captured: List[int] = field(default_factory=list)
    runes_per_height: Dict[int, int] = field(default_factory=dict)
    rejected_runes: List[Dict[str, Any]] = field(default_factory=list)
    files_written: List[str] = field(default_factory=list)
    failed_height: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CapturePipeline:
    """
    Captures one indexer's states for a range of heights.
    """

    def __init__(
        self,
        config: VerifierConfig,
        controller: Optional[IndexerController] = None,
        observer: Optional[Observer] = None
    ):
        """
        Initialize the capture pipeline.

        Args:
            config: Verifier configuration
            controller: Pre-built controller (built from config if not provided)
            observer: Lifecycle event observer for a controller built here
        """
        self.config = config
        self._owns_controller = controller is None
        self.controller = controller or IndexerController(
            config,
            observer=observer,
            store=SnapshotStore(config.states_dir)
        )

        logger.info(f"Pipeline initialized with config: {config.redacted()}")

    @property
    def store(self) -> SnapshotStore:
        return self.controller.store

    def run(self, from_height: int, to_height: int) -> CaptureStats:
        """
        Capture every height from ``from_height`` to ``to_height`` inclusive.

        Returns:
            CaptureStats; ``success`` is False and ``failed_height`` set when a
            height failed, in which case later heights were not attempted
        """
        if to_height < from_height:
            raise ValueError(f"to_height {to_height} is below from_height {from_height}")

        stats = CaptureStats(
            run_label=self.config.run_label,
            started_at=_now(),
            from_height=from_height,
            to_height=to_height,
        )
        logger.info(f"Capturing {self.config.run_label} states for heights {from_height}..{to_height}")

        try:
            for height in range(from_height, to_height + 1):
                try:
                    snapshot = self.controller.capture_height(height)
                except RunesDiffError as e:
                    error_msg = f"Height {height}: {type(e).__name__}: {e}"
                    logger.error(error_msg)
                    stats.errors.append(error_msg)
                    stats.failed_height = height
                    break

                stats.heights_captured.append(height)
                stats.runes_per_height[height] = len(snapshot.runes)
                stats.rejected_runes.extend(
                    {'height': height, 'rune_id': r.rune_id, 'spaced_rune': r.spaced_rune, 'reason': r.reason}
                    for r in snapshot.rejected
                )

        finally:
            try:
                stats.files_written = [str(path) for path in self.store.flush()]
            except OSError as e:
                error_msg = f"Snapshot write failed: {e}"
                logger.error(error_msg)
                stats.errors.append(error_msg)
            stats.completed_at = _now()

        stats.success = not stats.errors
        if stats.success:
            logger.info(f"Capture completed: {len(stats.heights_captured)} heights")
        return stats

    def close(self):
        """Clean up resources."""
        if self._owns_controller:
            self.controller.close()
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
