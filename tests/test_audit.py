"""Tests for the ledger file audit trail."""

import hashlib

from ledgersync.domain.audit import EMPTY_FILE_HASH, LedgerAuditLog, compute_file_hash
from ledgersync.domain.entities import AuditOperation, AuditTrigger
from ledgersync.domain.money import Money


def _record(audit_log, file_path, before, after, operation=AuditOperation.WRITE):
    return audit_log.record(
        operation=operation,
        file_hash_before=before,
        file_hash_after=after,
        transaction_count=1,
        balance_checksum=Money(-4523),
        triggered_by=AuditTrigger.USER,
        user_id="alice",
        file_path=file_path,
    )


def test_compute_file_hash(tmp_path):
    path = tmp_path / "main.hledger"
    assert compute_file_hash(str(path)) == EMPTY_FILE_HASH

    path.write_text("hello")
    assert compute_file_hash(str(path)) == hashlib.sha256(b"hello").hexdigest()


def test_record_and_list(temp_db, tmp_path):
    """Entries are returned newest first and keep every field."""
    audit_log = LedgerAuditLog(temp_db)
    path = str(tmp_path / "main.hledger")

    first = _record(audit_log, path, "a", "b")
    second = _record(audit_log, path, "b", "c", AuditOperation.IMPORT)
    _record(audit_log, str(tmp_path / "other.hledger"), "x", "y")

    entries = audit_log.list_entries(file_path=path)

    assert [e.id for e in entries] == [second.id, first.id]
    assert entries[0].operation == AuditOperation.IMPORT
    assert entries[0].balance_checksum == Money(-4523)
    assert entries[0].triggered_by == AuditTrigger.USER
    assert entries[0].timestamp.tzinfo is not None
    assert len(audit_log.list_entries()) == 3
    assert len(audit_log.list_entries(limit=1)) == 1
    assert audit_log.latest_entry(path).id == second.id


def test_no_history_is_not_an_external_edit(temp_db, tmp_path):
    path = tmp_path / "main.hledger"
    path.write_text("anything")

    assert LedgerAuditLog(temp_db).detect_external_edit(str(path), "alice") is None
    assert temp_db.list_ledger_file_audits() == []


def test_unchanged_file_is_not_an_external_edit(temp_db, tmp_path):
    audit_log = LedgerAuditLog(temp_db)
    path = tmp_path / "main.hledger"
    path.write_text("content")
    _record(audit_log, str(path), EMPTY_FILE_HASH, compute_file_hash(str(path)))

    assert audit_log.detect_external_edit(str(path), "alice") is None


def test_external_edit_is_recorded(temp_db, tmp_path):
    """A hash mismatch is recorded as a system-triggered manual edit."""
    audit_log = LedgerAuditLog(temp_db)
    path = tmp_path / "main.hledger"
    path.write_text("content")
    recorded_hash = compute_file_hash(str(path))
    _record(audit_log, str(path), EMPTY_FILE_HASH, recorded_hash)

    path.write_text("content edited by hand")
    entry = audit_log.detect_external_edit(str(path), "alice")

    assert entry.operation == AuditOperation.MANUAL_EDIT
    assert entry.triggered_by == AuditTrigger.SYSTEM
    assert entry.file_hash_before == recorded_hash
    assert entry.file_hash_after == compute_file_hash(str(path))
    assert entry.transaction_count == 0
    # The manual edit is now the latest known state
    assert audit_log.detect_external_edit(str(path), "alice") is None
