"""CSV import domain service.

An import runs as a session: parse, detect columns, check duplicates,
suggest categories, then commit accepted rows to the ledger file. Only
``commit`` has side effects.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Sequence

from ledgersync.database.base import Database
from ledgersync.domain.audit import LedgerAuditLog, compute_file_hash, ledger_path_key
from ledgersync.domain.column_detection import ColumnMappingDetector
from ledgersync.domain.column_mapping import ColumnMappingService
from ledgersync.domain.context import OperationContext
from ledgersync.domain.csv_parser import CsvParser
from ledgersync.domain.duplicates import DuplicateDetector
from ledgersync.domain.entities import (
    AcceptedRow,
    AuditOperation,
    AuditTrigger,
    CandidateTransaction,
    CategorySuggestion,
    ColumnDetectionResult,
    CsvImport,
    CsvParseResult,
    CsvPreview,
    DuplicateMatch,
    FieldType,
    LedgerFileAudit,
    Transaction,
)
from ledgersync.domain.errors import (
    DomainError,
    DuplicateFileImport,
    LedgerError,
    NotFoundError,
    ValidationError,
    describe_ledger_error,
    invalid_session_transition,
    session_not_found,
)
from ledgersync.domain.import_rules import ImportRuleEngine
from ledgersync.domain.money import Money
from ledgersync.ledger.formatter import journal_text
from ledgersync.ledger.runner import LedgerProcessRunner
from ledgersync.ledger.writer import LedgerFileWriter, LedgerMutationLock
from ledgersync.utils.amount_parser import parse_amount, parse_optional_amount
from ledgersync.utils.date_parser import parse_date

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Import session lifecycle."""

    PARSED = "parsed"
    COLUMNS_DETECTED = "columns_detected"
    DUPLICATES_CHECKED = "duplicates_checked"
    CATEGORIES_SUGGESTED = "categories_suggested"
    COMMITTED = "committed"
    ABORTED = "aborted"


STEP_ORDER = (
    SessionState.PARSED,
    SessionState.COLUMNS_DETECTED,
    SessionState.DUPLICATES_CHECKED,
    SessionState.CATEGORIES_SUGGESTED,
)
TERMINAL_STATES = (SessionState.COMMITTED, SessionState.ABORTED)


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of committing an import session."""

    csv_import: CsvImport
    audit: LedgerFileAudit
    transactions: tuple[Transaction, ...]
    errors: tuple[str, ...]
    warnings: tuple[str, ...]

    @property
    def successful_imports(self) -> int:
        return self.csv_import.successful_imports

    @property
    def duplicates_skipped(self) -> int:
        return self.csv_import.duplicates_skipped

    @property
    def error_count(self) -> int:
        return self.csv_import.error_count


def compute_content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def sanitize_payee(payee: str) -> str:
    """Payee text as it will appear in the ledger file."""
    return journal_text(payee)


def missing_required_fields(mappings: Mapping[str, str]) -> list[str]:
    """Required fields absent from a header to field-type mapping."""
    fields = set(mappings.values())
    missing = []
    if FieldType.DATE.value not in fields:
        missing.append(FieldType.DATE.value)
    if FieldType.DESCRIPTION.value not in fields:
        missing.append(FieldType.DESCRIPTION.value)
    if not fields & {FieldType.AMOUNT.value, FieldType.DEBIT.value, FieldType.CREDIT.value}:
        missing.append(FieldType.AMOUNT.value)
    return missing


def _columns_for(mappings: Mapping[str, str], field_type: FieldType) -> Optional[str]:
    for header, field in mappings.items():
        if field == field_type.value:
            return header
    return None


class CsvImportSession:
    """One CSV import in progress.

    Steps run in order; re-running a step discards the results of later
    steps. Any step after commit or abort raises ValidationError.
    """

    def __init__(
        self,
        session_id: str,
        file_name: str,
        file_hash: str,
        parse_result: CsvParseResult,
        account: str,
        user_id: str,
        db: Database,
        detector: ColumnMappingDetector,
        duplicate_detector: DuplicateDetector,
        rule_engine: ImportRuleEngine,
        writer: LedgerFileWriter,
        audit_log: LedgerAuditLog,
        mutation_lock: LedgerMutationLock,
        bank_format: Optional[str] = None,
        saved_mapping: Optional[Mapping[str, str]] = None,
        warnings: Sequence[Warning] = (),
    ):
        self.id = session_id
        self.file_name = file_name
        self.file_hash = file_hash
        self.parse_result = parse_result
        self.account = account
        self.user_id = user_id
        self.bank_format = bank_format
        self.saved_mapping = dict(saved_mapping) if saved_mapping else None
        self.warnings: list[Warning] = list(warnings)

        self.db = db
        self.detector = detector
        self.duplicate_detector = duplicate_detector
        self.rule_engine = rule_engine
        self.writer = writer
        self.audit_log = audit_log
        self.mutation_lock = mutation_lock

        self.state = SessionState.PARSED
        self.detection: Optional[ColumnDetectionResult] = None
        self.column_mapping: dict[str, str] = {}
        self.candidates: dict[int, CandidateTransaction] = {}
        self.row_errors: dict[int, str] = {}
        self.duplicates: dict[int, DuplicateMatch] = {}
        self.suggestions: dict[int, list[CategorySuggestion]] = {}
        self.summary: Optional[ImportSummary] = None

    def _require(self, action: str, allowed: Sequence[SessionState]) -> None:
        if self.state not in allowed:
            raise ValidationError(invalid_session_transition(self.id, self.state.value, action))

    def _reset_after(self, state: SessionState) -> None:
        index = STEP_ORDER.index(state)
        if index < STEP_ORDER.index(SessionState.COLUMNS_DETECTED):
            self.column_mapping = {}
            self.candidates = {}
            self.row_errors = {}
        if index < STEP_ORDER.index(SessionState.DUPLICATES_CHECKED):
            self.duplicates = {}
        if index < STEP_ORDER.index(SessionState.CATEGORIES_SUGGESTED):
            self.suggestions = {}
        self.state = state

    def detect_columns(self, mapping: Optional[Mapping[str, str]] = None) -> ColumnDetectionResult:
        """Detect columns and convert rows into candidate transactions.

        Args:
            mapping: Header to field type mapping overriding detection. A
                saved mapping for this header shape is used when omitted.

        Returns:
            The detection result (always computed, even with an override)

        Raises:
            ValidationError: If the effective mapping lacks a required field;
                the session then stays in the parsed state
        """
        self._require("detect columns for", STEP_ORDER)
        self._reset_after(SessionState.PARSED)

        self.detection = self.detector.detect(self.parse_result.headers, self.parse_result.sample_rows)
        if mapping is not None:
            effective = dict(mapping)
        elif self.saved_mapping is not None:
            effective = dict(self.saved_mapping)
        else:
            effective = dict(self.detection.mappings)

        unknown = sorted(h for h in effective if h not in self.parse_result.headers)
        if unknown:
            raise ValidationError(f"Column mapping refers to unknown column(s): {', '.join(unknown)}")

        missing = missing_required_fields(effective)
        if missing:
            raise ValidationError(
                f"Column mapping is missing required field(s): {', '.join(missing)}"
            )

        self.column_mapping = effective
        self._build_candidates()
        self.state = SessionState.COLUMNS_DETECTED

        logger.info(
            "Session %s: %d candidate(s), %d row error(s)",
            self.id,
            len(self.candidates),
            len(self.row_errors),
        )
        return self.detection

    def _build_candidates(self) -> None:
        date_col = _columns_for(self.column_mapping, FieldType.DATE)
        desc_col = _columns_for(self.column_mapping, FieldType.DESCRIPTION)
        memo_col = _columns_for(self.column_mapping, FieldType.MEMO)
        amount_col = _columns_for(self.column_mapping, FieldType.AMOUNT)
        debit_col = _columns_for(self.column_mapping, FieldType.DEBIT)
        credit_col = _columns_for(self.column_mapping, FieldType.CREDIT)

        for index, row in enumerate(self.parse_result.rows):
            try:
                txn_date = parse_date(row.get(date_col, ""))

                payee = sanitize_payee(row.get(desc_col, "") or "")
                if not payee:
                    raise ValueError("Missing description")

                if amount_col is not None:
                    amount = parse_amount(row.get(amount_col, ""))
                else:
                    debit = parse_optional_amount(row.get(debit_col, "")) if debit_col else Money(0)
                    credit = parse_optional_amount(row.get(credit_col, "")) if credit_col else Money(0)
                    # Debits leave the account whatever sign the bank prints
                    amount = abs(credit) - abs(debit)

                memo = None
                if memo_col is not None:
                    memo = journal_text(row.get(memo_col, "") or "", keep_pipes=True) or None

                self.candidates[index] = CandidateTransaction(
                    row_index=index,
                    date=txn_date,
                    payee=payee,
                    amount=amount,
                    account=self.account,
                    memo=memo,
                )
            except ValueError as e:
                self.row_errors[index] = f"Row {index + 1}: {e}"

    def check_duplicates(self) -> list[DuplicateMatch]:
        """Flag candidates already present in the transaction cache."""
        self._require(
            "check duplicates for",
            (SessionState.COLUMNS_DETECTED, SessionState.DUPLICATES_CHECKED, SessionState.CATEGORIES_SUGGESTED),
        )
        self._reset_after(SessionState.COLUMNS_DETECTED)

        matches = self.duplicate_detector.find_duplicates(list(self.candidates.values()))
        self.duplicates = {m.row_index: m for m in matches}
        self.state = SessionState.DUPLICATES_CHECKED
        return matches

    def suggest_categories(self) -> dict[int, list[CategorySuggestion]]:
        """Suggest categories for every non-duplicate candidate."""
        self._require(
            "suggest categories for",
            (SessionState.DUPLICATES_CHECKED, SessionState.CATEGORIES_SUGGESTED),
        )
        self._reset_after(SessionState.DUPLICATES_CHECKED)

        for index, candidate in self.candidates.items():
            if index in self.duplicates:
                continue
            suggestions = self.rule_engine.suggest(candidate.payee)
            if suggestions:
                self.suggestions[index] = suggestions

        self.state = SessionState.CATEGORIES_SUGGESTED
        return self.suggestions

    def top_suggestion(self, row_index: int) -> Optional[CategorySuggestion]:
        suggestions = self.suggestions.get(row_index)
        return suggestions[0] if suggestions else None

    def default_accepted_rows(self, default_category: Optional[str] = None) -> list[AcceptedRow]:
        """Accept every non-duplicate candidate with its top suggestion.

        Rows with no suggestion use ``default_category`` (or stay
        uncategorised and fail at commit).
        """
        rows = []
        for index in sorted(self.candidates):
            if index in self.duplicates:
                continue
            top = self.top_suggestion(index)
            category = top.suggested_category if top else default_category
            rows.append(AcceptedRow(row_index=index, category_account=category))
        return rows

    def abort(self) -> None:
        """Abandon the session. Nothing is written."""
        self._require("abort", STEP_ORDER)
        self.state = SessionState.ABORTED
        logger.info("Import session %s aborted", self.id)

    async def commit(
        self,
        accepted_rows: Sequence[AcceptedRow],
        ledger_file: str,
        context: Optional[OperationContext] = None,
        user_id: Optional[str] = None,
    ) -> ImportSummary:
        """Write accepted rows to the ledger file and record the import.

        Duplicates are re-checked against the cache and within the batch
        while holding the ledger's mutation lock. Rows that cannot be
        written count as errors; a rejected ledger write turns every pending
        row into an error. Exactly one CsvImport and one import audit entry
        are recorded either way, even when caching the written rows fails
        afterwards. An outside edit found before writing adds a manual-edit
        entry ahead of the import entry.

        Args:
            accepted_rows: Rows to import with their chosen categories
            ledger_file: Ledger file to append to
            context: Operation context
            user_id: Acting user (defaults to the session's user)

        Returns:
            ImportSummary with the stored import and audit records
        """
        self._require("commit", (SessionState.CATEGORIES_SUGGESTED,))
        context = context or OperationContext()
        user_id = user_id or self.user_id
        ledger_file = ledger_path_key(ledger_file)

        async with self.mutation_lock.hold(ledger_file):
            self.audit_log.detect_external_edit(ledger_file, user_id)
            hash_before = compute_file_hash(ledger_file)

            errors = list(self.row_errors.values())
            duplicate_rows = set(self.duplicates)
            pending: list[tuple[AcceptedRow, Transaction]] = []

            index = self.duplicate_detector.build_index(
                [self.candidates[r.row_index].hash for r in accepted_rows if r.row_index in self.candidates]
            )
            seen_hashes: set[str] = set()
            seen_rows: set[int] = set()

            for row in accepted_rows:
                if row.row_index in seen_rows or row.row_index in self.row_errors:
                    continue
                seen_rows.add(row.row_index)

                candidate = self.candidates.get(row.row_index)
                if candidate is None:
                    errors.append(f"Row {row.row_index + 1}: not part of this import")
                    continue

                txn_hash = candidate.hash
                if txn_hash in index or txn_hash in seen_hashes:
                    duplicate_rows.add(row.row_index)
                    continue

                category = row.category_account.strip() if row.category_account else ""
                if not category:
                    errors.append(f"Row {row.row_index + 1}: no category selected")
                    continue

                seen_hashes.add(txn_hash)
                pending.append(
                    (
                        row,
                        Transaction(
                            transaction_code=str(uuid.uuid4()),
                            date=candidate.date,
                            payee=candidate.payee,
                            amount=candidate.amount,
                            account=candidate.account,
                            category_account=category,
                            memo=row.memo if row.memo is not None else candidate.memo,
                            hash=txn_hash,
                        ),
                    )
                )

            written: list[Transaction] = []
            warnings: list[str] = [str(w) for w in self.warnings]
            error_message = None
            hash_after = hash_before

            if pending:
                transactions = [txn for _, txn in pending]
                try:
                    result = await self.writer.append_transactions(transactions, ledger_file, context)
                except (LedgerError, DomainError, OSError) as e:
                    if isinstance(e, LedgerError):
                        error_message = describe_ledger_error(e)
                    else:
                        error_message = str(e)
                    logger.error(
                        "Import %s failed to write %s: %s",
                        self.id,
                        ledger_file,
                        error_message,
                        extra=context.log_extra(),
                    )
                    errors.extend(
                        f"Row {row.row_index + 1}: not written ({error_message.splitlines()[0]})"
                        for row, _ in pending
                    )
                else:
                    hash_after = result.file_hash_after
                    written = transactions
                    error_message = self._cache_written(written, errors, context)
                    warnings.extend(self._record_rule_outcomes(pending))

            csv_import = self.db.create_csv_import(
                file_name=self.file_name,
                total_rows=self.parse_result.total_row_count + len(self.parse_result.errors),
                successful_imports=len(written),
                duplicates_skipped=len(duplicate_rows),
                error_count=len(errors) + len(self.parse_result.errors),
                column_mapping=self.column_mapping,
                file_hash=self.file_hash,
                user_id=user_id,
                bank_format=self.bank_format,
            )
            audit = self.audit_log.record(
                operation=AuditOperation.IMPORT,
                file_hash_before=hash_before,
                file_hash_after=hash_after,
                transaction_count=len(written),
                balance_checksum=sum((txn.amount for txn in written), Money(0)),
                triggered_by=AuditTrigger.USER,
                user_id=user_id,
                file_path=ledger_file,
                related_entity_id=csv_import.id,
                error_message=error_message,
            )

        self.state = SessionState.COMMITTED
        self.summary = ImportSummary(
            csv_import=csv_import,
            audit=audit,
            transactions=tuple(written),
            errors=tuple(errors),
            warnings=tuple(warnings),
        )
        logger.info(
            "Import %s committed: %d imported, %d duplicates skipped, %d errors",
            self.id,
            csv_import.successful_imports,
            csv_import.duplicates_skipped,
            csv_import.error_count,
            extra=context.log_extra(),
        )
        return self.summary

    def _cache_written(
        self, written: Sequence[Transaction], errors: list[str], context: OperationContext
    ) -> Optional[str]:
        # The ledger file already changed, so a store failure must not stop
        # the import and audit records from being written
        try:
            self.db.add_transactions(written)
        except Exception as e:
            message = f"Transactions written to the ledger but not cached: {e}"
            logger.exception("Import %s: %s", self.id, message, extra=context.log_extra())
            errors.append(message)
            return message
        return None

    def _record_rule_outcomes(self, pending: Sequence[tuple[AcceptedRow, Transaction]]) -> list[str]:
        warnings = []
        for row, txn in pending:
            top = self.top_suggestion(row.row_index)
            if top is None:
                continue
            accepted = txn.category_account == top.suggested_category
            try:
                self.rule_engine.record_outcome_with_retry(top.rule.id, accepted)
            except Exception as e:
                # The ledger write already happened; rule statistics lag behind
                logger.warning("Could not record outcome for rule %s: %s", top.rule.id, e)
                warnings.append(str(e))
        return warnings


class CsvImportService:
    """Service for previewing CSV files and running import sessions."""

    def __init__(
        self,
        db: Database,
        runner: LedgerProcessRunner,
        mutation_lock: Optional[LedgerMutationLock] = None,
        parser: Optional[CsvParser] = None,
        detector: Optional[ColumnMappingDetector] = None,
        writer: Optional[LedgerFileWriter] = None,
    ):
        """Initialize CSV import service.

        Args:
            db: Database instance
            runner: Process runner used to validate ledger writes
            mutation_lock: Lock shared by every writer of the same ledger files
            parser: CSV parser
            detector: Column detector
            writer: Ledger file writer
        """
        self.db = db
        self.runner = runner
        self.mutation_lock = mutation_lock or LedgerMutationLock()
        self.parser = parser or CsvParser()
        self.detector = detector or ColumnMappingDetector()
        self.writer = writer or LedgerFileWriter(runner)
        self.duplicate_detector = DuplicateDetector(db)
        self.rule_engine = ImportRuleEngine(db)
        self.audit_log = LedgerAuditLog(db)
        self.mapping_service = ColumnMappingService(db)
        self.sessions: dict[str, CsvImportSession] = {}

    def preview_csv(self, content: bytes, file_name: str = "upload.csv") -> CsvPreview:
        """Parse a CSV file and detect its columns without starting an import.

        Raises:
            CsvParseFailure: If the file has no header row
        """
        result = self.parser.parse(content, file_name)
        detection = self.detector.detect(result.headers, result.sample_rows)
        return CsvPreview(
            headers=result.headers,
            sample_rows=result.sample_rows,
            total_row_count=result.total_row_count,
            detected_delimiter=result.detected_delimiter,
            detected_encoding=result.detected_encoding,
            errors=result.errors,
            column_detection=detection,
        )

    def start_import_session(
        self,
        content: bytes,
        file_name: str,
        account: str,
        user_id: str,
        mapping: Optional[Mapping[str, str]] = None,
        bank_format: Optional[str] = None,
    ) -> CsvImportSession:
        """Parse a CSV file and open an import session.

        A saved column mapping matching the file's headers is attached to
        the session when no explicit mapping is given. Re-importing a file
        with the same content adds a DuplicateFileImport warning.

        Args:
            content: Raw CSV bytes
            file_name: Original file name
            account: Ledger account the statement belongs to
            user_id: Acting user
            mapping: Optional explicit header to field type mapping
            bank_format: Optional bank/format label stored with the import

        Returns:
            The new session, in the parsed state

        Raises:
            ValidationError: If the account is empty
            CsvParseFailure: If the file has no header row
        """
        if not account or not account.strip():
            raise ValidationError("Account is required")

        result = self.parser.parse(content, file_name)
        file_hash = compute_content_hash(content)

        warnings: list[Warning] = []
        previous = self.db.find_csv_import_by_hash(file_hash)
        if previous is not None:
            logger.warning("File %s was already imported as %s", file_name, previous.id)
            warnings.append(DuplicateFileImport(file_hash, previous.id, previous.file_name))

        saved_mapping = None
        if mapping is None:
            rule = self.mapping_service.find_for_headers(result.headers)
            if rule is not None:
                logger.info("Reusing saved column mapping %s (%s)", rule.id, rule.bank_identifier)
                saved_mapping = rule.column_mappings
                bank_format = bank_format or rule.bank_identifier
                self.mapping_service.record_use(rule.id)

        session = CsvImportSession(
            session_id=str(uuid.uuid4()),
            file_name=file_name,
            file_hash=file_hash,
            parse_result=result,
            account=account.strip(),
            user_id=user_id,
            db=self.db,
            detector=self.detector,
            duplicate_detector=self.duplicate_detector,
            rule_engine=self.rule_engine,
            writer=self.writer,
            audit_log=self.audit_log,
            mutation_lock=self.mutation_lock,
            bank_format=bank_format,
            saved_mapping=mapping if mapping is not None else saved_mapping,
            warnings=warnings,
        )
        self.sessions[session.id] = session
        logger.info("Started import session %s for %s (%d rows)", session.id, file_name, result.total_row_count)
        return session

    def get_session(self, session_id: str) -> CsvImportSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(session_not_found(session_id))
        return session

    async def commit_import_session(
        self,
        session_id: str,
        accepted_rows: Sequence[AcceptedRow],
        ledger_file: str,
        user_id: Optional[str] = None,
        context: Optional[OperationContext] = None,
    ) -> ImportSummary:
        """Commit a session. See CsvImportSession.commit."""
        session = self.get_session(session_id)
        return await session.commit(accepted_rows, ledger_file, context=context, user_id=user_id)

    def abort_import_session(self, session_id: str) -> None:
        self.get_session(session_id).abort()
