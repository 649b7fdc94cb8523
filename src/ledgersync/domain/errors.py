"""Shared domain error messages and error types."""

from typing import Optional, Sequence


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity or path does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ConcurrencyConflict(ConflictError):
    """A persisted rule changed between read and write.

    Callers re-read the rule and reapply their change; the store never
    overwrites a newer version.
    """

    def __init__(self, entity: str, entity_id: str, expected_version: int):
        super().__init__(
            f"{entity} {entity_id} was modified concurrently "
            f"(expected version {expected_version}). Reload and try again."
        )
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version


class CsvParseFailure(ValidationError):
    """CSV content could not be parsed at all."""


class LedgerError(Exception):
    """Base class for failures talking to the accounting engine."""


class BinaryUnavailable(LedgerError):
    """The engine binary cannot be located or failed verification.

    This is a setup problem and is not retried.
    """


class ProcessFailure(LedgerError):
    """The engine exited unsuccessfully or timed out."""

    def __init__(
        self,
        message: str,
        exit_code: int,
        stdout: str,
        stderr: str,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out


class ParseFailure(LedgerError):
    """The engine succeeded but its output was not in the expected format."""

    def __init__(self, message: str, raw_output: str):
        super().__init__(message)
        self.raw_output = raw_output


class ValidationFailure(LedgerError):
    """The engine rejected the content of a ledger file."""

    def __init__(self, message: str, errors: Sequence[str], file_path: Optional[str] = None):
        super().__init__(f"{message}: {'; '.join(errors)}" if errors else message)
        self.errors = list(errors)
        self.file_path = file_path


class OperationCancelled(LedgerError):
    """The caller cancelled an in-flight engine invocation."""


class DuplicateFileImport(UserWarning):
    """The same CSV file (by content hash) was imported before."""

    def __init__(self, file_hash: str, previous_import_id: str, previous_file_name: str):
        super().__init__(
            f"File was already imported as '{previous_file_name}' "
            f"(import {previous_import_id})"
        )
        self.file_hash = file_hash
        self.previous_import_id = previous_import_id
        self.previous_file_name = previous_file_name


def import_rule_not_found(rule_id: str) -> str:
    """Return message for missing import rule."""
    return f"Import rule {rule_id} not found"


def column_mapping_not_found(mapping_id: str) -> str:
    """Return message for missing or already deleted column mapping."""
    return f"Column mapping with ID {mapping_id} not found or already deleted"


def session_not_found(session_id: str) -> str:
    """Return message for unknown import session."""
    return f"Import session {session_id} not found"


def invalid_session_transition(session_id: str, state: str, action: str) -> str:
    """Return message when a session step runs out of order."""
    return f"Cannot {action} import session {session_id} in state '{state}'"


def describe_ledger_error(error: LedgerError) -> str:
    """Return a multi-line description carrying the engine's raw diagnostics."""
    lines = [str(error)]
    if isinstance(error, ProcessFailure):
        lines.append(f"Exit code: {error.exit_code}")
        if error.stderr:
            lines.append(f"Stderr: {error.stderr.strip()}")
        if error.stdout:
            lines.append(f"Stdout: {error.stdout.strip()}")
    elif isinstance(error, ParseFailure):
        lines.append(f"Raw output: {error.raw_output.strip()}")
    elif isinstance(error, ValidationFailure) and error.file_path:
        lines.append(f"File: {error.file_path}")
    return "\n".join(lines)
