"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic: money is stored as integer cents,
mapping dictionaries as JSON text and enums as their string values.
"""

import json
from datetime import datetime, UTC
from typing import Optional

from ledgersync.domain import entities as domain
from ledgersync.domain.money import Money
from ledgersync.database.models import (
    ColumnMappingRule as ORMColumnMappingRule,
    CsvImport as ORMCsvImport,
    ImportRule as ORMImportRule,
    LedgerFileAudit as ORMLedgerFileAudit,
    Transaction as ORMTransaction,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def mappings_to_json(mappings: dict[str, str]) -> str:
    return json.dumps(mappings, sort_keys=True)


def mappings_from_json(raw: Optional[str]) -> dict[str, str]:
    if not raw:
        return {}
    return dict(json.loads(raw))


def import_rule_to_domain(orm_rule: ORMImportRule) -> domain.ImportRule:
    """Convert SQLAlchemy ImportRule model to domain ImportRule entity."""
    return domain.ImportRule(
        id=orm_rule.id,
        payee_pattern=orm_rule.payee_pattern,
        match_type=domain.MatchType(orm_rule.match_type),
        priority=orm_rule.priority,
        suggested_category=orm_rule.suggested_category,
        confidence=orm_rule.confidence,
        times_applied=orm_rule.times_applied,
        times_accepted=orm_rule.times_accepted,
        is_active=orm_rule.is_active,
        created_at=_aware(orm_rule.created_at),
        last_used_at=_aware(orm_rule.last_used_at),
        version=orm_rule.version,
    )


def column_mapping_rule_to_domain(orm_rule: ORMColumnMappingRule) -> domain.ColumnMappingRule:
    """Convert SQLAlchemy ColumnMappingRule model to domain ColumnMappingRule entity."""
    return domain.ColumnMappingRule(
        id=orm_rule.id,
        bank_identifier=orm_rule.bank_identifier,
        bank_match_pattern=orm_rule.bank_match_pattern,
        header_signature=orm_rule.header_signature,
        column_mappings=mappings_from_json(orm_rule.column_mappings),
        created_at=_aware(orm_rule.created_at),
        last_used_at=_aware(orm_rule.last_used_at),
        times_used=orm_rule.times_used,
        is_active=orm_rule.is_active,
        version=orm_rule.version,
    )


def csv_import_to_domain(orm_import: ORMCsvImport) -> domain.CsvImport:
    """Convert SQLAlchemy CsvImport model to domain CsvImport entity."""
    return domain.CsvImport(
        id=orm_import.id,
        file_name=orm_import.file_name,
        imported_at=_aware(orm_import.imported_at),
        total_rows=orm_import.total_rows,
        successful_imports=orm_import.successful_imports,
        duplicates_skipped=orm_import.duplicates_skipped,
        error_count=orm_import.error_count,
        bank_format=orm_import.bank_format,
        column_mapping=mappings_from_json(orm_import.column_mapping),
        file_hash=orm_import.file_hash,
        user_id=orm_import.user_id,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        transaction_code=orm_transaction.transaction_code,
        date=orm_transaction.date,
        payee=orm_transaction.payee,
        amount=Money(orm_transaction.amount_cents),
        account=orm_transaction.account,
        category_account=orm_transaction.category_account,
        memo=orm_transaction.memo,
        hash=orm_transaction.hash,
    )


def transaction_to_orm(transaction: domain.Transaction) -> ORMTransaction:
    """Convert domain Transaction entity to a new SQLAlchemy Transaction model."""
    return ORMTransaction(
        transaction_code=transaction.transaction_code,
        date=transaction.date,
        payee=transaction.payee,
        amount_cents=transaction.amount.cents,
        account=transaction.account,
        category_account=transaction.category_account,
        memo=transaction.memo,
        hash=transaction.hash,
    )


def ledger_file_audit_to_domain(orm_audit: ORMLedgerFileAudit) -> domain.LedgerFileAudit:
    """Convert SQLAlchemy LedgerFileAudit model to domain LedgerFileAudit entity."""
    return domain.LedgerFileAudit(
        id=orm_audit.id,
        timestamp=_aware(orm_audit.timestamp),
        operation=domain.AuditOperation(orm_audit.operation),
        file_hash_before=orm_audit.file_hash_before,
        file_hash_after=orm_audit.file_hash_after,
        transaction_count=orm_audit.transaction_count,
        balance_checksum=Money(orm_audit.balance_checksum_cents),
        triggered_by=domain.AuditTrigger(orm_audit.triggered_by),
        error_message=orm_audit.error_message,
        related_entity_id=orm_audit.related_entity_id,
        user_id=orm_audit.user_id,
        file_path=orm_audit.file_path,
    )
