from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

from runes_diff.config import VerifierConfig
from runes_diff.errors import ConfigError

ENV_NAMES = [
    "BITCOIN_RPC_URL", "BITCOIN_RPC_USERNAME", "BITCOIN_RPC_PASSWORD",
    "ORD_EXECUTABLE_PATH", "ORD_DIR_PATH", "ORD_HOST", "ORD_PORT", "ORD_CHAIN",
    "RUN_LABEL", "STATES_DIR", "RETRIEVAL_MODE", "STRICT_RUNE_RECORDS",
    "POLL_INTERVAL_SECONDS", "READY_TIMEOUT_SECONDS", "SHUTDOWN_TIMEOUT_SECONDS",
    "REQUEST_TIMEOUT_SECONDS", "MAX_RETRIES", "MAX_WORKERS",
]


@pytest.fixture(autouse=True)
def clean_env() -> Iterator[None]:
    # load_dotenv writes straight into os.environ
    saved = {name: os.environ.pop(name) for name in ENV_NAMES if name in os.environ}
    yield
    for name in ENV_NAMES:
        os.environ.pop(name, None)
    os.environ.update(saved)


def _env_file(tmp_path: Path, text: str) -> str:
    path = tmp_path / ".env"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_loads_dotenv_file(tmp_path: Path) -> None:
    env_file = _env_file(
        tmp_path,
        "BITCOIN_RPC_URL=http://node:8332\n"
        "BITCOIN_RPC_USERNAME=user\n"
        "BITCOIN_RPC_PASSWORD=pw\n"
        "ORD_EXECUTABLE_PATH=/bin/ord\n"
        "ORD_DIR_PATH=/data/ord\n"
        "ORD_HOST=http://localhost\n"
        "ORD_PORT=9001\n"
        "RETRIEVAL_MODE=balance-first\n"
        "READY_TIMEOUT_SECONDS=42.5\n",
    )

    config = VerifierConfig.from_env(env_file=env_file)

    assert config.bitcoin_rpc_url == "http://node:8332"
    assert config.ord_port == 9001
    assert config.base_url == "http://localhost:9001"
    assert config.retrieval_mode == "balance-first"
    assert config.ready_timeout_seconds == 42.5
    assert config.validate() is config


def test_process_environment_wins_over_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = _env_file(tmp_path, "ORD_PORT=9001\n")
    monkeypatch.setenv("ORD_PORT", "7000")

    assert VerifierConfig.from_env(env_file=env_file).ord_port == 7000


def test_overrides_win_and_none_is_ignored(tmp_path: Path) -> None:
    env_file = _env_file(tmp_path, "RUN_LABEL=ord\nORD_PORT=9001\n")

    config = VerifierConfig.from_env(env_file=env_file, run_label="smartindex", ord_port=None)

    assert config.run_label == "smartindex"
    assert config.ord_port == 9001


def test_unknown_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        VerifierConfig.from_env(env_file=_env_file(tmp_path, ""), base_url="x")


def test_bad_number_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        VerifierConfig.from_env(env_file=_env_file(tmp_path, "ORD_PORT=eighty\n"))


def test_missing_env_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        VerifierConfig.from_env(env_file=str(tmp_path / "nope.env"))


def test_validate_lists_every_problem() -> None:
    config = VerifierConfig(ord_port=0, retrieval_mode="sideways", max_workers=0)

    with pytest.raises(ConfigError) as info:
        config.validate()

    message = str(info.value)
    for expected in ("bitcoin_rpc_url", "ord_executable_path", "ord_dir_path", "ord_port", "retrieval_mode", "max_workers"):
        assert expected in message


def test_run_label_must_be_a_plain_name(config: VerifierConfig) -> None:
    config.run_label = "../elsewhere"
    with pytest.raises(ConfigError):
        config.validate()


def test_redacted_hides_password(config: VerifierConfig) -> None:
    assert config.redacted()["bitcoin_rpc_password"] == "***"
    assert "secret" not in str(config.redacted())
