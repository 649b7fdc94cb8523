"""Configuration management for ledgersync.

Settings come from environment variables; CLI options override them.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from ledgersync.ledger.runner import DEFAULT_TIMEOUT_SECONDS

DB_PATH_ENV = "LEDGERSYNC_DB_PATH"
LEDGER_FILE_ENV = "LEDGERSYNC_LEDGER_FILE"
HLEDGER_PATH_ENV = "LEDGERSYNC_HLEDGER_PATH"
HLEDGER_SHA256_ENV = "LEDGERSYNC_HLEDGER_SHA256"
TIMEOUT_ENV = "LEDGERSYNC_TIMEOUT"
USER_ID_ENV = "LEDGERSYNC_USER_ID"
DEFAULT_USER_ID = "default"


def get_data_dir() -> Path:
    """Get the data directory (~/.ledgersync)."""
    return Path.home() / ".ledgersync"


def default_ledger_file() -> str:
    return str(get_data_dir() / "ledger.hledger")


@dataclass(frozen=True)
class Settings:
    """Runtime settings."""

    db_path: Optional[str] = None
    ledger_file: str = ""
    hledger_path: Optional[str] = None
    hledger_sha256: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    user_id: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Load settings from environment variables.

        Raises:
            ValueError: If LEDGERSYNC_TIMEOUT is not a positive number
        """
        env = os.environ if environ is None else environ

        raw_timeout = env.get(TIMEOUT_ENV)
        timeout = DEFAULT_TIMEOUT_SECONDS
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as e:
                raise ValueError(f"{TIMEOUT_ENV} must be a number, got '{raw_timeout}'") from e
            if timeout <= 0:
                raise ValueError(f"{TIMEOUT_ENV} must be positive, got '{raw_timeout}'")

        return cls(
            db_path=env.get(DB_PATH_ENV) or None,
            ledger_file=env.get(LEDGER_FILE_ENV) or default_ledger_file(),
            hledger_path=env.get(HLEDGER_PATH_ENV) or None,
            hledger_sha256=env.get(HLEDGER_SHA256_ENV) or None,
            timeout=timeout,
            user_id=env.get(USER_ID_ENV) or env.get("USER") or DEFAULT_USER_ID,
        )
