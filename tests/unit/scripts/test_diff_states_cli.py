from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

import pytest

SCRIPT = Path(__file__).resolve().parents[3] / "scripts" / "diff_states.py"


def _load_script() -> ModuleType:
    spec = importlib.util.spec_from_file_location("diff_states", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(monkeypatch: pytest.MonkeyPatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["diff_states.py", *argv])
    return _load_script().main()


def test_reversed_height_range_is_a_usage_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as info:
        _run(monkeypatch, "--from-height", "840010", "--to-height", "840000", "--states-dir", str(tmp_path))

    assert info.value.code == 2
    assert "below --from-height" in capsys.readouterr().err


def test_range_with_no_snapshots_reports_missing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    code = _run(monkeypatch, "--from-height", "840000", "--to-height", "840001", "--states-dir", str(tmp_path), "--json")
    assert code == 2
