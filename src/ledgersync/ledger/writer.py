"""Atomic, validated writes to the ledger file."""

import asyncio
import contextlib
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ledgersync.domain.audit import compute_file_hash, ledger_path_key
from ledgersync.domain.context import OperationContext
from ledgersync.domain.entities import Transaction, WriteResult
from ledgersync.domain.errors import OperationCancelled, ValidationFailure
from ledgersync.ledger.formatter import TransactionFormatter
from ledgersync.ledger.runner import LedgerProcessRunner

logger = logging.getLogger(__name__)

MAX_IO_ATTEMPTS = 3
IO_RETRY_DELAY_SECONDS = 0.1
ACCOUNT_DIRECTIVE = "account "


def backup_path(file_path: str) -> Path:
    path = Path(file_path)
    return path.with_name(path.name + ".bak")


def _temp_path(path: Path) -> Path:
    # Keep the extension so hledger picks the journal reader
    return path.with_name(f".{path.stem}.{uuid.uuid4().hex}.tmp{path.suffix}")


def declared_accounts(content: str) -> set[str]:
    """Accounts declared with ``account`` directives in journal text."""
    accounts = set()
    for line in content.splitlines():
        if line.startswith(ACCOUNT_DIRECTIVE):
            # Directive comments start after two spaces or a semicolon
            name = line[len(ACCOUNT_DIRECTIVE):].split(";", 1)[0].split("  ", 1)[0].strip()
            if name:
                accounts.add(name)
    return accounts


class LedgerMutationLock:
    """Serialises mutations of each ledger file within the process.

    Files are keyed by resolved path, so different spellings of the same
    path share a lock.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def for_path(self, file_path: str) -> asyncio.Lock:
        key = ledger_path_key(file_path)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, file_path: str) -> AsyncIterator[None]:
        """Hold the lock for ``file_path`` for the duration of the block."""
        async with self.for_path(file_path):
            yield


class LedgerFileWriter:
    """Appends transactions to a ledger file.

    New content is written to a temporary file next to the ledger and
    checked with ``hledger check`` before the original is backed up to
    ``.bak`` and replaced. Callers serialise writes to the same file with
    LedgerMutationLock.
    """

    def __init__(self, runner: LedgerProcessRunner, formatter: Optional[TransactionFormatter] = None):
        """Initialize ledger writer.

        Args:
            runner: Process runner used to validate new content
            formatter: Transaction formatter (defaults to TransactionFormatter)
        """
        self.runner = runner
        self.formatter = formatter or TransactionFormatter()

    async def append_transactions(
        self,
        transactions: Sequence[Transaction],
        file_path: str,
        context: Optional[OperationContext] = None,
    ) -> WriteResult:
        """Append transactions and any new account directives.

        Args:
            transactions: Transactions to append, in order
            file_path: Ledger file; created if it does not exist
            context: Operation context

        Returns:
            WriteResult with file hashes before and after

        Raises:
            ValidationError: If a transaction cannot be formatted
            ValidationFailure: If hledger rejects the resulting journal
            OSError: If the file cannot be written after retries
        """
        context = context or OperationContext()
        path = Path(file_path)
        hash_before = compute_file_hash(file_path)

        if not transactions:
            return WriteResult(file_hash_before=hash_before, file_hash_after=hash_before, transactions_written=0)

        logger.info(
            "Appending %d transaction(s) to %s", len(transactions), file_path, extra=context.log_extra()
        )

        path.parent.mkdir(parents=True, exist_ok=True)
        existing = path.read_text(encoding="utf-8") if path.is_file() else ""
        content = self._build_content(existing, transactions)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(OSError),
                stop=stop_after_attempt(MAX_IO_ATTEMPTS),
                wait=wait_fixed(IO_RETRY_DELAY_SECONDS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await self._write_validated(path, content, context)
        except OSError as e:
            logger.error("Failed to write %s: %s", file_path, e, extra=context.log_extra())
            raise

        hash_after = compute_file_hash(file_path)
        logger.info(
            "Appended %d transaction(s) to %s. Hash: %s -> %s",
            len(transactions),
            file_path,
            hash_before,
            hash_after,
            extra=context.log_extra(),
        )
        return WriteResult(
            file_hash_before=hash_before,
            file_hash_after=hash_after,
            transactions_written=len(transactions),
        )

    def restore_from_backup(self, file_path: str) -> str:
        """Copy the ``.bak`` backup over the ledger file.

        Returns:
            Hash of the restored file

        Raises:
            FileNotFoundError: If there is no backup
        """
        backup = backup_path(file_path)
        if not backup.is_file():
            raise FileNotFoundError(f"Backup file not found: {backup}")

        logger.warning("Restoring %s from backup %s", file_path, backup)
        shutil.copyfile(backup, file_path)
        return compute_file_hash(file_path)

    def _build_content(self, existing: str, transactions: Sequence[Transaction]) -> str:
        new_accounts = sorted(self.formatter.accounts_for(transactions) - declared_accounts(existing))
        body = self.formatter.format_transactions(transactions)

        parts = []
        if existing.strip():
            parts.append(existing if existing.endswith("\n") else existing + "\n")
            parts.append("\n")
        if new_accounts:
            parts.append("".join(f"{ACCOUNT_DIRECTIVE}{account}\n" for account in new_accounts))
            parts.append("\n")
        parts.append(body)
        return "".join(parts)

    async def _write_validated(self, path: Path, content: str, context: OperationContext) -> None:
        temp = _temp_path(path)
        try:
            temp.write_text(content, encoding="utf-8")
            logger.debug("Wrote candidate journal to %s", temp, extra=context.log_extra())

            result = await self.runner.validate(str(temp), context=context)
            if not result.is_valid:
                logger.error(
                    "hledger validation failed for %s: %s",
                    path,
                    "; ".join(result.errors),
                    extra=context.log_extra(),
                )
                raise ValidationFailure("Transaction validation failed", result.errors, str(path))

            if context.cancelled:
                raise OperationCancelled(f"Write to {path} cancelled")

            if path.is_file():
                shutil.copy2(path, backup_path(str(path)))
                logger.debug("Created backup of %s", path, extra=context.log_extra())

            os.replace(temp, path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                temp.unlink()
