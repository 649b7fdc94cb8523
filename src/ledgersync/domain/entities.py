"""Domain model entities for ledgersync.

These are pure data classes representing business concepts, independent of
database schema. The ledger file stays the source of truth; the persisted
entities here are a rebuildable cache plus the learned rule repository.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Optional

from ledgersync.domain.hashing import compute_transaction_hash
from ledgersync.domain.money import Money


class MatchType(str, Enum):
    """How an import rule's payee pattern is compared to payee text."""

    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


class AuditOperation(str, Enum):
    """Kind of ledger file state transition recorded in the audit log."""

    READ = "read"
    WRITE = "write"
    IMPORT = "import"
    MANUAL_EDIT = "manual-edit"


class AuditTrigger(str, Enum):
    """Who or what caused an audited operation."""

    USER = "user"
    SYSTEM = "system"
    SCHEDULED = "scheduled"


class FieldType(str, Enum):
    """Logical CSV column types."""

    DATE = "date"
    AMOUNT = "amount"
    DESCRIPTION = "description"
    MEMO = "memo"
    BALANCE = "balance"
    DEBIT = "debit"
    CREDIT = "credit"


REQUIRED_FIELD_TYPES = (FieldType.DATE, FieldType.AMOUNT, FieldType.DESCRIPTION)


@dataclass(frozen=True)
class BalanceEntry:
    """One account balance as reported by the accounting engine."""

    account: str
    amount: Money
    commodity: str


@dataclass(frozen=True)
class BalanceResult:
    """Flat balance report."""

    balances: tuple[BalanceEntry, ...]
    total_balance: Money


@dataclass(frozen=True)
class BalanceNode:
    """Node of the account tree.

    ``is_stub`` marks nodes synthesised for ancestors the engine did not
    report; their balance is the sum of their children.
    """

    account: str
    balance: Money
    depth: int
    children: tuple["BalanceNode", ...] = ()
    is_stub: bool = False

    @property
    def name(self) -> str:
        """Last segment of the account path."""
        return self.account.rsplit(":", 1)[-1]


@dataclass(frozen=True)
class BalanceTree:
    """Hierarchical balance report."""

    roots: tuple[BalanceNode, ...]
    total_balance: Money
    as_of: datetime


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a ledger file with the engine."""

    is_valid: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        return cls(is_valid=False, errors=tuple(errors))


@dataclass(frozen=True)
class ColumnMappingRule:
    """Saved CSV column mapping for one bank's export shape."""

    id: str
    bank_identifier: str
    bank_match_pattern: Optional[str]
    header_signature: str
    column_mappings: dict[str, str]
    created_at: datetime
    last_used_at: datetime
    times_used: int
    is_active: bool
    version: int


@dataclass(frozen=True)
class ImportRule:
    """Learned payee to category rule."""

    id: str
    payee_pattern: str
    match_type: MatchType
    priority: int
    suggested_category: str
    confidence: float
    times_applied: int
    times_accepted: int
    is_active: bool
    created_at: datetime
    last_used_at: Optional[datetime]
    version: int


@dataclass(frozen=True)
class CsvImport:
    """Summary record of one completed import run."""

    id: str
    file_name: str
    imported_at: datetime
    total_rows: int
    successful_imports: int
    duplicates_skipped: int
    error_count: int
    bank_format: Optional[str]
    column_mapping: dict[str, str]
    file_hash: str
    user_id: str


@dataclass(frozen=True)
class Transaction:
    """Cached projection of a ledger transaction."""

    transaction_code: str
    date: date
    payee: str
    amount: Money
    account: str
    category_account: str
    memo: Optional[str]
    hash: str


@dataclass(frozen=True)
class LedgerFileAudit:
    """Append-only record of a ledger file state transition."""

    id: str
    timestamp: datetime
    operation: AuditOperation
    file_hash_before: str
    file_hash_after: str
    transaction_count: int
    balance_checksum: Money
    triggered_by: AuditTrigger
    error_message: Optional[str]
    related_entity_id: Optional[str]
    user_id: str
    file_path: str


@dataclass(frozen=True)
class CsvParseError:
    """Row-level CSV problem."""

    line_number: int
    message: str
    column_name: Optional[str] = None


@dataclass(frozen=True)
class CsvParseResult:
    """Parsed CSV content."""

    headers: tuple[str, ...]
    rows: tuple[dict[str, str], ...]
    detected_delimiter: str
    detected_encoding: str
    errors: tuple[CsvParseError, ...] = ()

    @property
    def sample_rows(self) -> tuple[dict[str, str], ...]:
        """First ten data rows."""
        return self.rows[:10]

    @property
    def total_row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class ColumnDetectionResult:
    """Advisory column mapping inferred from headers and sample rows."""

    mappings: dict[str, str] = field(default_factory=dict)
    confidence_by_field: dict[str, float] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    all_required_detected: bool = False


@dataclass(frozen=True)
class CsvPreview:
    """Preview of an uploaded CSV file."""

    headers: tuple[str, ...]
    sample_rows: tuple[dict[str, str], ...]
    total_row_count: int
    detected_delimiter: str
    detected_encoding: str
    errors: tuple[CsvParseError, ...]
    column_detection: Optional[ColumnDetectionResult]


@dataclass(frozen=True)
class CandidateTransaction:
    """CSV row converted to transaction fields, before commit."""

    row_index: int
    date: date
    payee: str
    amount: Money
    account: str
    memo: Optional[str] = None

    @property
    def hash(self) -> str:
        return compute_transaction_hash(self.date, self.payee, self.amount, self.account)


@dataclass(frozen=True)
class DuplicateMatch:
    """A candidate row whose hash matches an already cached transaction."""

    row_index: int
    existing: Transaction


@dataclass(frozen=True)
class CategorySuggestion:
    """Category suggested by an import rule."""

    rule: ImportRule
    suggested_category: str
    confidence: float
    matched_pattern: str


@dataclass(frozen=True)
class AcceptedRow:
    """User decision for one candidate row at commit time."""

    row_index: int
    category_account: Optional[str]
    memo: Optional[str] = None


@dataclass(frozen=True)
class WriteResult:
    """Outcome of appending transactions to the ledger file."""

    file_hash_before: str
    file_hash_after: str
    transactions_written: int
