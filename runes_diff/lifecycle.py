"""
Indexer Lifecycle Controller

Drives an external indexer binary through one height's cycle:
1. ``index update`` with ``--height-limit H+1`` and wait for it to exit
2. ``server --http-port P`` with the same limit
3. Poll ``/blockheight`` until the server reports H
4. Capture the snapshot and queue it for writing
5. Interrupt the server and wait for it to exit

The indexer's data directory and HTTP port belong to one cycle at a time, so
a controller runs cycles strictly one after another.
"""

import logging
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import VerifierConfig
from .errors import (
    HeightOvershoot,
    IndexUpdateFailed,
    ProcessSpawnFailed,
    ReadinessTimeout,
    RunesDiffError,
    ServerExited,
    SourceUnavailable,
)
from .events import EventKind, LifecycleEvent, LoggingObserver, Observer, Phase
from .models import Snapshot
from .ord_client import OrdClient
from .snapshot_builder import SnapshotBuilder, retrieval_source
from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

READER_JOIN_TIMEOUT = 5.0


@dataclass
class _Child:
    """A spawned indexer process and the threads forwarding its output."""
    mode: str
    process: subprocess.Popen
    readers: List[threading.Thread] = field(default_factory=list)

    def join_readers(self, timeout: float = READER_JOIN_TIMEOUT):
        for reader in self.readers:
            reader.join(timeout)


class IndexerController:
    """
    Runs the index-update/serve/capture cycle for single heights.

    Collaborators are injectable so the state machine can be exercised
    without a real indexer: ``popen`` replaces ``subprocess.Popen``,
    ``sleep`` and ``clock`` replace ``time.sleep`` and ``time.monotonic``.
    """

    def __init__(
        self,
        config: VerifierConfig,
        observer: Optional[Observer] = None,
        probe_client: Optional[OrdClient] = None,
        builder: Optional[SnapshotBuilder] = None,
        store: Optional[SnapshotStore] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            config: Validated eagerly; raises ConfigError when incomplete
            observer: Receives every LifecycleEvent (defaults to logging)
            probe_client: Client used for readiness polling; should not retry
            builder: Snapshot builder bound to the server's API
            store: Destination for captured snapshots
        """
        self.config = config.validate()
        self.observer = observer or LoggingObserver()
        self._owned_clients: List[OrdClient] = []

        if probe_client is None:
            probe_client = OrdClient(
                config.base_url,
                timeout=min(5.0, config.request_timeout_seconds),
                max_retries=0
            )
            self._owned_clients.append(probe_client)
        self.probe_client = probe_client

        if builder is None:
            api_client = OrdClient(
                config.base_url,
                timeout=config.request_timeout_seconds,
                max_retries=config.max_retries,
                pool_maxsize=max(10, config.max_workers)
            )
            self._owned_clients.append(api_client)
            source = retrieval_source(config.retrieval_mode, api_client, config.max_workers)
            builder = SnapshotBuilder(source, strict=config.strict)
        self.builder = builder

        self.store = store or SnapshotStore(config.states_dir)
        self._popen = popen
        self._sleep = sleep
        self._clock = clock

        self.phase = Phase.IDLE
        self.height: Optional[int] = None

    # ========== Commands ==========

    def indexer_args(self, height: int) -> List[str]:
        """Flags shared by both indexer modes for a target height."""
        return [
            "--chain", self.config.chain,
            "--bitcoin-rpc-url", self.config.bitcoin_rpc_url,
            "--bitcoin-rpc-username", self.config.bitcoin_rpc_username,
            "--bitcoin-rpc-password", self.config.bitcoin_rpc_password,
            "--index-runes",
            "--no-index-inscriptions",
            "--height-limit", str(height + 1),
            "--data-dir", self.config.ord_dir_path,
        ]

    def update_command(self, height: int) -> List[str]:
        return [self.config.ord_executable_path, *self.indexer_args(height), "index", "update"]

    def server_command(self, height: int) -> List[str]:
        return [
            self.config.ord_executable_path, *self.indexer_args(height),
            "server", "--http-port", str(self.config.ord_port),
        ]

    # ========== Cycle ==========

    def capture_height(self, height: int) -> Snapshot:
        """
        Run one full cycle and return the captured snapshot.

        The snapshot write is queued on the store; call ``store.flush()``
        before reading it back.

        Raises:
            ProcessSpawnFailed: the indexer binary could not be started
            IndexUpdateFailed: ``index update`` exited non-zero
            ServerExited: the server died before becoming ready
            HeightOvershoot: the server indexed past the target height
            ReadinessTimeout: the server did not become ready in time
            SourceUnavailable: an API request failed during capture
        """
        self.height = height
        self._set_phase(Phase.IDLE)
        server = None

        try:
            self._set_phase(Phase.INDEXING, f"updating index to height {height}")
            self._update_index(height)

            self._set_phase(Phase.WAITING_READY, f"serving on port {self.config.ord_port}")
            server = self._spawn("server", self.server_command(height), height)
            self._wait_until_ready(server, height)
            self._set_phase(Phase.READY)

            self._set_phase(Phase.CAPTURING)
            snapshot = self.builder.build(height)
            for rejected in snapshot.rejected:
                self._emit(EventKind.PROGRESS, f"skipped rune {rejected.rune_id} ({rejected.spaced_rune}): {rejected.reason}")
            self.store.write_async(self.config.run_label, snapshot)

            self._set_phase(Phase.TERMINATING)
            child, server = server, None
            self._terminate(child, height)

            self._set_phase(Phase.DONE, f"{len(snapshot.runes)} runes captured")
            return snapshot

        except RunesDiffError as e:
            self._fail(e)
            raise

        finally:
            if server is not None:
                self._terminate(server, height)

    def _update_index(self, height: int):
        child = self._spawn("index", self.update_command(height), height)
        returncode = child.process.wait()
        child.join_readers()
        if returncode != 0:
            raise IndexUpdateFailed(height, returncode)
        self._emit(EventKind.PROGRESS, f"index updated to height {height}")

    def _spawn(self, mode: str, command: List[str], height: int) -> _Child:
        logger.debug(f"Starting {mode}: {' '.join(self._redact(command))}")
        try:
            process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors='replace',
                bufsize=1,
            )
        except OSError as e:
            raise ProcessSpawnFailed(height, mode, e) from e

        child = _Child(mode=mode, process=process)
        for stream_name in ('stdout', 'stderr'):
            stream = getattr(process, stream_name)
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._forward,
                args=(stream, f"{mode}:{stream_name}", height),
                name=f"{mode}-{stream_name}-{height}",
                daemon=True,
            )
            reader.start()
            child.readers.append(reader)
        return child

    def _forward(self, stream, stream_name: str, height: int):
        """Relay a child's output to the observer line by line as it arrives."""
        try:
            for line in iter(stream.readline, ''):
                self.observer(LifecycleEvent(
                    kind=EventKind.OUTPUT, height=height, phase=self.phase,
                    message=line, stream=stream_name,
                ))
        except ValueError:
            # stream closed underneath us during shutdown
            pass
        finally:
            stream.close()

    def _wait_until_ready(self, server: _Child, height: int):
        """
        Poll the server until it reports ``height``.

        Connection failures mean the server is not listening yet and are
        retried. The wait ends with an error when the server exits, overshoots
        the target, or ``ready_timeout_seconds`` elapses.
        """
        started = self._clock()
        last_reported: Optional[int] = None
        listening = False

        while True:
            returncode = server.process.poll()
            if returncode is not None:
                server.join_readers()
                raise ServerExited(height, returncode)

            try:
                reported = self.probe_client.get_block_height()
            except SourceUnavailable:
                reported = None
            else:
                if not listening:
                    listening = True
                    self._emit(EventKind.PROGRESS, "server is listening")
                if reported != last_reported:
                    self._emit(EventKind.PROGRESS, f"server reports height {reported}")
                    last_reported = reported

                if reported == height:
                    return
                if reported is not None and reported > height:
                    raise HeightOvershoot(height, reported)

            waited = self._clock() - started
            if waited >= self.config.ready_timeout_seconds:
                raise ReadinessTimeout(height, waited, last_reported)
            self._sleep(self.config.poll_interval_seconds)

    def _terminate(self, child: _Child, height: int):
        """Interrupt the server and wait; kill it if it ignores the interrupt."""
        process = child.process
        if process.poll() is None:
            try:
                process.send_signal(signal.SIGINT)
            except ProcessLookupError:
                pass
            try:
                process.wait(timeout=self.config.shutdown_timeout_seconds)
            except subprocess.TimeoutExpired:
                self._emit(
                    EventKind.PROGRESS,
                    f"{child.mode} did not exit {self.config.shutdown_timeout_seconds:.0f}s after SIGINT; killing",
                )
                process.kill()
                process.wait()

        child.join_readers()
        self._emit(EventKind.PROGRESS, f"{child.mode} exited with code {process.returncode}")

    # ========== Events ==========

    def _set_phase(self, phase: Phase, message: str = ""):
        self.phase = phase
        self._emit(EventKind.PHASE, message)

    def _fail(self, error: Exception):
        # the error event carries the phase that failed
        self.observer(LifecycleEvent(
            kind=EventKind.ERROR, height=self.height, phase=self.phase,
            message=str(error), error=error,
        ))
        self._set_phase(Phase.FAILED, type(error).__name__)

    def _emit(self, kind: EventKind, message: str):
        self.observer(LifecycleEvent(kind=kind, height=self.height, phase=self.phase, message=message))

    def _redact(self, command: List[str]) -> List[str]:
        password = self.config.bitcoin_rpc_password
        return ['***' if password and arg == password else arg for arg in command]

    # ========== Utility Methods ==========

    def close(self):
        """Close the HTTP clients this controller created."""
        for client in self._owned_clients:
            client.close()
        self._owned_clients = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
