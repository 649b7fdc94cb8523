"""Ledger file audit trail."""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from ledgersync.database.base import Database
from ledgersync.domain.entities import AuditOperation, AuditTrigger, LedgerFileAudit
from ledgersync.domain.money import Money
from ledgersync.ledger.binary import compute_file_sha256

logger = logging.getLogger(__name__)

EMPTY_FILE_HASH = hashlib.sha256(b"").hexdigest()


def compute_file_hash(file_path: str) -> str:
    """SHA-256 of a ledger file; a missing file hashes as empty content."""
    path = Path(file_path)
    if not path.is_file():
        return EMPTY_FILE_HASH
    return compute_file_sha256(path)


def ledger_path_key(file_path: str) -> str:
    """Canonical spelling of a ledger file path for locks and audit history."""
    return str(Path(file_path).expanduser().resolve())


class LedgerAuditLog:
    """Append-only log of ledger file state transitions.

    Entries are never updated or deleted.
    """

    def __init__(self, db: Database):
        """Initialize audit log.

        Args:
            db: Database instance
        """
        self.db = db

    def record(
        self,
        operation: AuditOperation,
        file_hash_before: str,
        file_hash_after: str,
        transaction_count: int,
        balance_checksum: Money,
        triggered_by: AuditTrigger,
        user_id: str,
        file_path: str,
        related_entity_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> LedgerFileAudit:
        """Append an audit entry.

        Args:
            operation: Kind of state transition
            file_hash_before: File hash before the operation
            file_hash_after: File hash after the operation (equal to
                ``file_hash_before`` when nothing changed)
            transaction_count: Transactions affected
            balance_checksum: Sum of the affected amounts
            triggered_by: Who or what caused the operation
            user_id: Acting user
            file_path: Ledger file path
            related_entity_id: E.g. the CsvImport id for imports
            error_message: Failure detail when the operation did not succeed

        Returns:
            The stored audit entry
        """
        file_path = ledger_path_key(file_path)
        entry = self.db.create_ledger_file_audit(
            operation=AuditOperation(operation),
            file_hash_before=file_hash_before,
            file_hash_after=file_hash_after,
            transaction_count=transaction_count,
            balance_checksum=balance_checksum,
            triggered_by=AuditTrigger(triggered_by),
            user_id=user_id,
            file_path=file_path,
            related_entity_id=related_entity_id,
            error_message=error_message,
        )

        if error_message:
            logger.warning(
                "Audit %s on %s recorded with error: %s", entry.operation.value, file_path, error_message
            )
        else:
            logger.info(
                "Audit %s on %s recorded: %d transaction(s), checksum %s",
                entry.operation.value,
                file_path,
                transaction_count,
                balance_checksum,
            )
        return entry

    def list_entries(self, file_path: Optional[str] = None, limit: Optional[int] = None) -> list[LedgerFileAudit]:
        """List audit entries, newest first."""
        if file_path is not None:
            file_path = ledger_path_key(file_path)
        return self.db.list_ledger_file_audits(file_path=file_path, limit=limit)

    def latest_entry(self, file_path: str) -> Optional[LedgerFileAudit]:
        entries = self.db.list_ledger_file_audits(file_path=ledger_path_key(file_path), limit=1)
        return entries[0] if entries else None

    def detect_external_edit(self, file_path: str, user_id: str) -> Optional[LedgerFileAudit]:
        """Record a manual-edit entry if the file changed outside ledgersync.

        The current file hash is compared with the ``file_hash_after`` of the
        latest entry for the file. Files with no history are not flagged.

        Returns:
            The new manual-edit entry, or None if the file is unchanged
        """
        file_path = ledger_path_key(file_path)
        latest = self.latest_entry(file_path)
        if latest is None:
            return None

        current = compute_file_hash(file_path)
        if current == latest.file_hash_after:
            return None

        logger.warning(
            "Ledger file %s changed outside ledgersync (expected %s, found %s)",
            file_path,
            latest.file_hash_after,
            current,
        )
        return self.record(
            operation=AuditOperation.MANUAL_EDIT,
            file_hash_before=latest.file_hash_after,
            file_hash_after=current,
            transaction_count=0,
            balance_checksum=Money(0),
            triggered_by=AuditTrigger.SYSTEM,
            user_id=user_id,
            file_path=file_path,
        )
