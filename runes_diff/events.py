"""
Lifecycle events emitted by the indexer controller.

The controller reports what it does as events and leaves presentation to an
observer. ``LoggingObserver`` renders them through ``logging``; tests attach
observers that simply collect them.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class Phase(Enum):
    """States of one height's index-update/serve cycle."""
    IDLE = 'idle'
    INDEXING = 'indexing'
    WAITING_READY = 'serving:waiting-ready'
    READY = 'serving:ready'
    CAPTURING = 'capturing'
    TERMINATING = 'terminating'
    DONE = 'done'
    FAILED = 'failed'

    @property
    def terminal(self) -> bool:
        return self in (Phase.DONE, Phase.FAILED)


class EventKind(Enum):
    PHASE = 'phase'
    OUTPUT = 'output'
    PROGRESS = 'progress'
    ERROR = 'error'


@dataclass(frozen=True)
class LifecycleEvent:
    """
    One observable step of the controller.

    ``stream`` is set for OUTPUT events (``"index:stdout"``,
    ``"server:stderr"``...). ``error`` is set for ERROR events.
    """
    kind: EventKind
    height: int
    phase: Phase
    message: str = ""
    stream: Optional[str] = None
    error: Optional[BaseException] = None


Observer = Callable[[LifecycleEvent], None]


class LoggingObserver:
    """Render lifecycle events through a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, output_level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger('runes_diff.indexer')
        self.output_level = output_level

    def __call__(self, event: LifecycleEvent) -> None:
        if event.kind is EventKind.OUTPUT:
            self.logger.log(self.output_level, f"[{event.height}] {event.stream}: {event.message.rstrip()}")
        elif event.kind is EventKind.PHASE:
            self.logger.info(f"[{event.height}] -> {event.phase.value}" + (f": {event.message}" if event.message else ""))
        elif event.kind is EventKind.ERROR:
            self.logger.error(f"[{event.height}] {event.phase.value} failed: {event.message}")
        else:
            self.logger.info(f"[{event.height}] {event.message}")
