"""
Configuration for capturing and comparing runes indexer states.

Values come from the environment (optionally seeded from a ``.env`` file) and
can be overridden field by field from the command line.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .snapshot_builder import LEDGER_FIRST, RETRIEVAL_MODES

logger = logging.getLogger(__name__)


@dataclass
class VerifierConfig:
    """Configuration for one capture run against one indexer build."""
    # Bitcoin Core RPC used by the indexer
    bitcoin_rpc_url: str = ""
    bitcoin_rpc_username: str = ""
    bitcoin_rpc_password: str = ""

    # Indexer process
    ord_executable_path: str = ""
    ord_dir_path: str = ""
    ord_host: str = "http://127.0.0.1"
    ord_port: int = 8080
    chain: str = "mainnet"

    # Capture output
    run_label: str = "ord"
    states_dir: str = "."
    retrieval_mode: str = LEDGER_FIRST
    strict: bool = False

    # Timing
    poll_interval_seconds: float = 0.5
    ready_timeout_seconds: float = 1800.0
    shutdown_timeout_seconds: float = 60.0

    # HTTP
    request_timeout_seconds: float = 60.0
    max_retries: int = 3
    max_workers: int = 8

    @property
    def base_url(self) -> str:
        """Indexer API base URL, e.g. ``http://127.0.0.1:8080``."""
        return f"{self.ord_host.rstrip('/')}:{self.ord_port}"

    def redacted(self) -> Dict[str, Any]:
        """Field values safe to log."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        if values['bitcoin_rpc_password']:
            values['bitcoin_rpc_password'] = '***'
        return values

    def validate(self) -> 'VerifierConfig':
        """
        Check every field eagerly.

        Raises:
            ConfigError: naming all missing or invalid fields at once
        """
        problems: List[str] = []

        for name in ('bitcoin_rpc_url', 'bitcoin_rpc_username', 'bitcoin_rpc_password',
                     'ord_executable_path', 'ord_dir_path', 'ord_host', 'run_label'):
            if not getattr(self, name):
                problems.append(f"{name} is required")

        if not (0 < self.ord_port < 65536):
            problems.append(f"ord_port must be between 1 and 65535, got {self.ord_port}")
        if self.retrieval_mode not in RETRIEVAL_MODES:
            problems.append(f"retrieval_mode must be one of {', '.join(RETRIEVAL_MODES)}, got {self.retrieval_mode!r}")
        if self.run_label and ('/' in self.run_label or os.sep in self.run_label):
            problems.append(f"run_label must not contain path separators, got {self.run_label!r}")
        for name in ('poll_interval_seconds', 'ready_timeout_seconds',
                     'shutdown_timeout_seconds', 'request_timeout_seconds'):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        if self.max_retries < 0:
            problems.append("max_retries must not be negative")
        if self.max_workers < 1:
            problems.append("max_workers must be at least 1")

        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems))
        return self

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides: Any) -> 'VerifierConfig':
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional path to a ``.env`` file; the default search
                applies when omitted. Existing variables are not overridden.
            **overrides: Field values that win over the environment (None is ignored)

        Raises:
            ConfigError: if a numeric variable cannot be parsed
        """
        if env_file is not None and not Path(env_file).is_file():
            raise ConfigError(f"Environment file not found: {env_file}")
        load_dotenv(dotenv_path=env_file)

        defaults = cls()
        try:
            config = cls(
                bitcoin_rpc_url=os.environ.get('BITCOIN_RPC_URL', defaults.bitcoin_rpc_url),
                bitcoin_rpc_username=os.environ.get('BITCOIN_RPC_USERNAME', defaults.bitcoin_rpc_username),
                bitcoin_rpc_password=os.environ.get('BITCOIN_RPC_PASSWORD', defaults.bitcoin_rpc_password),
                ord_executable_path=os.environ.get('ORD_EXECUTABLE_PATH', defaults.ord_executable_path),
                ord_dir_path=os.environ.get('ORD_DIR_PATH', defaults.ord_dir_path),
                ord_host=os.environ.get('ORD_HOST', defaults.ord_host),
                ord_port=int(os.environ.get('ORD_PORT', str(defaults.ord_port))),
                chain=os.environ.get('ORD_CHAIN', defaults.chain),
                run_label=os.environ.get('RUN_LABEL', defaults.run_label),
                states_dir=os.environ.get('STATES_DIR', defaults.states_dir),
                retrieval_mode=os.environ.get('RETRIEVAL_MODE', defaults.retrieval_mode),
                strict=os.environ.get('STRICT_RUNE_RECORDS', 'false').lower() == 'true',
                poll_interval_seconds=float(os.environ.get('POLL_INTERVAL_SECONDS', str(defaults.poll_interval_seconds))),
                ready_timeout_seconds=float(os.environ.get('READY_TIMEOUT_SECONDS', str(defaults.ready_timeout_seconds))),
                shutdown_timeout_seconds=float(os.environ.get('SHUTDOWN_TIMEOUT_SECONDS', str(defaults.shutdown_timeout_seconds))),
                request_timeout_seconds=float(os.environ.get('REQUEST_TIMEOUT_SECONDS', str(defaults.request_timeout_seconds))),
                max_retries=int(os.environ.get('MAX_RETRIES', str(defaults.max_retries))),
                max_workers=int(os.environ.get('MAX_WORKERS', str(defaults.max_workers))),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting in environment: {e}") from e

        field_names = {f.name for f in fields(cls)}
        for name, value in overrides.items():
            if name not in field_names:
                raise ConfigError(f"Unknown configuration field: {name}")
            if value is not None:
                setattr(config, name, value)

        logger.debug(f"Loaded configuration: {config.redacted()}")
        return config
