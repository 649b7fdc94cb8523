"""Abstract database interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

# Import entities directly to avoid circular import through domain/__init__.py
from ledgersync.domain.entities import (
    AuditOperation,
    AuditTrigger,
    ColumnMappingRule,
    CsvImport,
    ImportRule,
    LedgerFileAudit,
    MatchType,
    Transaction,
)
from ledgersync.domain.money import Money


class Database(ABC):
    """Abstract store interface for ledgersync.

    The store is a rebuildable cache plus the learned rule repository; the
    ledger file remains authoritative. Rule updates take an
    ``expected_version`` and raise ConcurrencyConflict when it is stale.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Import rule operations
    @abstractmethod
    def create_import_rule(
        self,
        payee_pattern: str,
        match_type: MatchType,
        suggested_category: str,
        priority: int = 1,
        confidence: float = 0.6,
    ) -> ImportRule:
        """Create an import rule."""
        pass

    @abstractmethod
    def get_import_rule(self, rule_id: str) -> Optional[ImportRule]:
        """Get import rule by ID."""
        pass

    @abstractmethod
    def list_import_rules(self, active_only: bool = True) -> list[ImportRule]:
        """List import rules ordered by priority."""
        pass

    @abstractmethod
    def update_import_rule_stats(
        self,
        rule_id: str,
        expected_version: int,
        times_applied: int,
        times_accepted: int,
        confidence: float,
        last_used_at: datetime,
    ) -> ImportRule:
        """Compare-and-swap rule statistics. Returns the updated rule."""
        pass

    @abstractmethod
    def set_import_rule_active(self, rule_id: str, expected_version: int, is_active: bool) -> ImportRule:
        """Compare-and-swap the active flag. Returns the updated rule."""
        pass

    # Column mapping rule operations
    @abstractmethod
    def create_column_mapping_rule(
        self,
        bank_identifier: str,
        header_signature: str,
        column_mappings: dict[str, str],
        bank_match_pattern: Optional[str] = None,
    ) -> ColumnMappingRule:
        """Create a column mapping rule."""
        pass

    @abstractmethod
    def get_column_mapping_rule(self, rule_id: str) -> Optional[ColumnMappingRule]:
        """Get column mapping rule by ID."""
        pass

    @abstractmethod
    def get_active_column_mapping_by_bank(self, bank_identifier: str) -> Optional[ColumnMappingRule]:
        """Get the active column mapping rule for a bank identifier."""
        pass

    @abstractmethod
    def find_column_mapping_by_signature(self, header_signature: str) -> Optional[ColumnMappingRule]:
        """Get the most recently used active rule with this header signature."""
        pass

    @abstractmethod
    def list_column_mapping_rules(self, active_only: bool = True) -> list[ColumnMappingRule]:
        """List column mapping rules, most recently used first."""
        pass

    @abstractmethod
    def update_column_mapping_rule(
        self,
        rule_id: str,
        expected_version: int,
        *,
        header_signature: Optional[str] = None,
        column_mappings: Optional[dict[str, str]] = None,
        bank_match_pattern: Optional[str] = None,
        is_active: Optional[bool] = None,
        times_used: Optional[int] = None,
        last_used_at: Optional[datetime] = None,
    ) -> ColumnMappingRule:
        """Compare-and-swap the given fields. Returns the updated rule."""
        pass

    # CSV import operations
    @abstractmethod
    def create_csv_import(
        self,
        file_name: str,
        total_rows: int,
        successful_imports: int,
        duplicates_skipped: int,
        error_count: int,
        column_mapping: dict[str, str],
        file_hash: str,
        user_id: str,
        bank_format: Optional[str] = None,
    ) -> CsvImport:
        """Create a CSV import summary record."""
        pass

    @abstractmethod
    def get_csv_import(self, import_id: str) -> Optional[CsvImport]:
        """Get CSV import by ID."""
        pass

    @abstractmethod
    def find_csv_import_by_hash(self, file_hash: str) -> Optional[CsvImport]:
        """Get the earliest import of a file with this content hash."""
        pass

    @abstractmethod
    def list_csv_imports(self) -> list[CsvImport]:
        """List CSV imports, newest first."""
        pass

    # Transaction cache operations
    @abstractmethod
    def add_transactions(self, transactions: Sequence[Transaction]) -> None:
        """Insert cached transactions."""
        pass

    @abstractmethod
    def find_transactions_by_hashes(self, hashes: Sequence[str]) -> list[Transaction]:
        """Get cached transactions whose hash is in ``hashes``."""
        pass

    @abstractmethod
    def list_transactions(self) -> list[Transaction]:
        """List cached transactions ordered by date."""
        pass

    # Ledger file audit operations
    @abstractmethod
    def create_ledger_file_audit(
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
        """Append an audit record."""
        pass

    @abstractmethod
    def list_ledger_file_audits(
        self, file_path: Optional[str] = None, limit: Optional[int] = None
    ) -> list[LedgerFileAudit]:
        """List audit records, newest first, optionally for one file."""
        pass
