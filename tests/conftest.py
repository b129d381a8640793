from __future__ import annotations

import copy
import io
import subprocess
import threading
from pathlib import Path
from typing import Any

import pytest

from runes_diff.config import VerifierConfig
from runes_diff.errors import SourceUnavailable


def make_rune_detail(number: int, spaced_rune: str, **overrides: Any) -> dict[str, Any]:
    """A rune detail shaped like the indexer's JSON."""
    detail: dict[str, Any] = {
        "block": 840000,
        "burned": 0,
        "divisibility": 0,
        "etching": "ab" * 32,
        "mints": 0,
        "number": number,
        "premine": 1000,
        "spaced_rune": spaced_rune,
        "symbol": "¤",
        "terms": None,
        "timestamp": 1713571767,
        "turbo": False,
    }
    detail.update(overrides)
    return detail


class FakeOrdClient:
    """In-memory stand-in for OrdClient."""

    def __init__(
        self,
        pages: list[dict[str, Any]] | None = None,
        balances: dict[str, dict[str, Any]] | None = None,
        runes: dict[str, dict[str, Any]] | None = None,
        heights: list[Any] | None = None,
    ) -> None:
        self.pages = pages if pages is not None else [{"entries": [], "more": False}]
        self.balances = balances if balances is not None else {}
        self.runes = runes if runes is not None else {}
        self.heights = list(heights or [])
        self.calls: list[tuple[str, Any]] = []
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, name: str, arg: Any = None) -> None:
        with self._lock:
            self.calls.append((name, arg))

    def get_runes_page(self, page: int) -> dict[str, Any]:
        self._record("runes_page", page)
        if page >= len(self.pages):
            raise SourceUnavailable(f"/runes/{page}", message=f"no page {page}")
        return copy.deepcopy(self.pages[page])

    def get_rune_balances(self) -> dict[str, dict[str, Any]]:
        self._record("balances")
        return copy.deepcopy(self.balances)

    def get_rune(self, spaced_rune: str) -> dict[str, Any]:
        self._record("rune", spaced_rune)
        if spaced_rune not in self.runes:
            raise SourceUnavailable(f"/rune/{spaced_rune}", message="404 Not Found")
        return copy.deepcopy(self.runes[spaced_rune])

    def get_block_height(self) -> int | None:
        self._record("blockheight")
        if not self.heights:
            raise SourceUnavailable("/blockheight", message="connection refused")
        item = self.heights.pop(0) if len(self.heights) > 1 else self.heights[0]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Stand-in for subprocess.Popen driven by the test."""

    def __init__(
        self,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        running: bool = False,
        exit_after_polls: int | None = None,
        ignore_sigint: bool = False,
    ) -> None:
        self.exit_code = exit_code
        self.stdout = io.StringIO(stdout)
        self.stderr = io.StringIO(stderr)
        self.running = running
        self.exit_after_polls = exit_after_polls
        self.ignore_sigint = ignore_sigint
        self.returncode: int | None = None
        self.signals: list[int] = []
        self.killed = False
        self.polls = 0
        self.pid = 4242

    def poll(self) -> int | None:
        self.polls += 1
        if self.returncode is None and self.exit_after_polls is not None and self.polls > self.exit_after_polls:
            self.returncode = self.exit_code
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is not None:
            return self.returncode
        if self.running and not self.killed and (self.ignore_sigint or not self.signals):
            if timeout is None:
                raise AssertionError("wait() without timeout would block forever")
            raise subprocess.TimeoutExpired("indexer", timeout)
        self.returncode = -9 if self.killed else self.exit_code
        return self.returncode

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)

    def kill(self) -> None:
        self.killed = True


class FakePopen:
    """Hands out prepared FakeProcess objects and records each command."""

    def __init__(self, *processes: FakeProcess | OSError) -> None:
        self.queue = list(processes)
        self.commands: list[list[str]] = []
        self.kwargs: list[dict[str, Any]] = []

    def __call__(self, command: list[str], **kwargs: Any) -> FakeProcess:
        self.commands.append(list(command))
        self.kwargs.append(kwargs)
        item = self.queue.pop(0)
        if isinstance(item, OSError):
            raise item
        return item


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def rune_detail():
    return make_rune_detail


@pytest.fixture
def fake_client_cls():
    return FakeOrdClient


@pytest.fixture
def fake_process_cls():
    return FakeProcess


@pytest.fixture
def fake_popen_cls():
    return FakePopen


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path: Path) -> VerifierConfig:
    return VerifierConfig(
        bitcoin_rpc_url="http://127.0.0.1:8332",
        bitcoin_rpc_username="bitcoin",
        bitcoin_rpc_password="secret",
        ord_executable_path="/usr/local/bin/ord",
        ord_dir_path=str(tmp_path / "ord-data"),
        ord_host="http://127.0.0.1",
        ord_port=8080,
        run_label="ord",
        states_dir=str(tmp_path / "states"),
        poll_interval_seconds=0.5,
        ready_timeout_seconds=10.0,
        shutdown_timeout_seconds=5.0,
    )
