"""Locating and verifying the hledger executable."""

import hashlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Optional

from ledgersync.domain.errors import BinaryUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BINARY_NAME = "hledger"


def compute_file_sha256(path: Path) -> str:
    """Return the lowercase hex SHA-256 of a file's bytes."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class BinaryLocator:
    """Resolves the engine binary once and caches the result.

    An explicitly configured path wins over a ``PATH`` lookup. When an
    expected checksum is configured the binary's SHA-256 must match it.
    """

    def __init__(
        self,
        binary_path: Optional[str] = None,
        expected_sha256: Optional[str] = None,
        binary_name: str = DEFAULT_BINARY_NAME,
    ):
        self.binary_path = binary_path
        self.expected_sha256 = expected_sha256.lower() if expected_sha256 else None
        self.binary_name = binary_name
        self._cached_path: Optional[str] = None
        self._lock = threading.Lock()

    def locate(self) -> str:
        """Return the path to a usable engine binary.

        Raises:
            BinaryUnavailable: If no executable binary can be found or it
                fails checksum verification
        """
        if self._cached_path is not None and os.path.exists(self._cached_path):
            return self._cached_path

        with self._lock:
            path = self._resolve()
            self._verify(path)
            self._cached_path = path

        logger.info("hledger binary ready at %s", path)
        return path

    def _resolve(self) -> str:
        if self.binary_path:
            candidate = Path(self.binary_path).expanduser()
            if not candidate.is_file():
                raise BinaryUnavailable(f"hledger binary not found at {candidate}")
            if not os.access(candidate, os.X_OK):
                raise BinaryUnavailable(f"hledger binary at {candidate} is not executable")
            return str(candidate)

        found = shutil.which(self.binary_name)
        if found is None:
            raise BinaryUnavailable(
                f"'{self.binary_name}' executable not found on PATH. "
                "Install hledger or set LEDGERSYNC_HLEDGER_PATH."
            )
        return found

    def _verify(self, path: str) -> None:
        if self.expected_sha256 is None:
            return

        actual = compute_file_sha256(Path(path))
        if actual != self.expected_sha256:
            logger.error(
                "SHA256 checksum mismatch for %s. Expected: %s, Actual: %s",
                path,
                self.expected_sha256,
                actual,
            )
            raise BinaryUnavailable(f"hledger binary validation failed at {path}")
        logger.debug("SHA256 checksum verified for %s", path)

    def reset(self) -> None:
        """Forget the cached path."""
        self._cached_path = None
