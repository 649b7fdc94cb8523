"""Saved CSV column mapping rules."""

import logging
import re
from datetime import datetime, UTC
from typing import Mapping, Optional, Sequence

from ledgersync.database.base import Database
from ledgersync.domain.entities import ColumnMappingRule, FieldType
from ledgersync.domain.errors import NotFoundError, ValidationError, column_mapping_not_found

logger = logging.getLogger(__name__)

BANK_IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_]+$")
MAX_BANK_IDENTIFIER_LENGTH = 100
MAX_BANK_PATTERN_LENGTH = 200
VALID_FIELD_TYPES = frozenset(f.value for f in FieldType)


def header_signature(headers: Sequence[str]) -> str:
    """Identify a CSV shape by its normalised header row."""
    return "|".join(h.strip().lower() for h in headers)


def validate_column_mapping(
    bank_identifier: str,
    signature: str,
    column_mappings: Mapping[str, str],
    bank_match_pattern: Optional[str] = None,
) -> list[str]:
    """Return validation error messages for a mapping (empty when valid)."""
    errors = []

    if not bank_identifier or not bank_identifier.strip():
        errors.append("Bank identifier is required")
    elif len(bank_identifier) > MAX_BANK_IDENTIFIER_LENGTH:
        errors.append(f"Bank identifier must not exceed {MAX_BANK_IDENTIFIER_LENGTH} characters")
    elif not BANK_IDENTIFIER_PATTERN.match(bank_identifier):
        errors.append("Bank identifier can only contain letters, numbers, spaces, hyphens, and underscores")

    if not signature or not signature.strip():
        errors.append("Header signature is required")

    if not column_mappings:
        errors.append("Column mappings are required")
    else:
        invalid = sorted({v for v in column_mappings.values() if v not in VALID_FIELD_TYPES})
        if invalid:
            errors.append(
                f"Invalid field type(s): {', '.join(invalid)}. "
                f"Valid types are: {', '.join(sorted(VALID_FIELD_TYPES))}"
            )

        fields = set(column_mappings.values())
        if FieldType.DATE.value not in fields:
            errors.append("Column mappings must include a date field")
        has_amount = FieldType.AMOUNT.value in fields
        has_debit_credit = FieldType.DEBIT.value in fields or FieldType.CREDIT.value in fields
        if not has_amount and not has_debit_credit:
            errors.append("Column mappings must include an amount field or debit/credit fields")

    if bank_match_pattern is not None and len(bank_match_pattern) > MAX_BANK_PATTERN_LENGTH:
        errors.append(f"Bank match pattern must not exceed {MAX_BANK_PATTERN_LENGTH} characters")

    return errors


class ColumnMappingService:
    """Service for saving and reusing per-bank CSV column mappings."""

    def __init__(self, db: Database):
        """Initialize column mapping service.

        Args:
            db: Database instance
        """
        self.db = db

    def save_mapping(
        self,
        bank_identifier: str,
        signature: str,
        column_mappings: Mapping[str, str],
        bank_match_pattern: Optional[str] = None,
    ) -> ColumnMappingRule:
        """Create or update the active mapping for a bank.

        Args:
            bank_identifier: Name of the bank or export format
            signature: Header signature the mapping applies to
            column_mappings: CSV header to field type
            bank_match_pattern: Optional pattern identifying the bank

        Returns:
            The saved rule

        Raises:
            ValidationError: If the mapping is invalid
            ConcurrencyConflict: If the existing rule changed while saving
        """
        bank_identifier = bank_identifier.strip() if bank_identifier else ""
        errors = validate_column_mapping(bank_identifier, signature, column_mappings, bank_match_pattern)
        if errors:
            raise ValidationError("; ".join(errors))

        mappings = dict(column_mappings)
        existing = self.db.get_active_column_mapping_by_bank(bank_identifier)
        if existing is not None:
            rule = self.db.update_column_mapping_rule(
                existing.id,
                expected_version=existing.version,
                header_signature=signature,
                column_mappings=mappings,
                bank_match_pattern=bank_match_pattern,
                last_used_at=datetime.now(UTC),
            )
            logger.info("Updated column mapping %s for bank %s", rule.id, bank_identifier)
            return rule

        rule = self.db.create_column_mapping_rule(
            bank_identifier=bank_identifier,
            header_signature=signature,
            column_mappings=mappings,
            bank_match_pattern=bank_match_pattern,
        )
        logger.info("Created column mapping %s for bank %s", rule.id, bank_identifier)
        return rule

    def list_mappings(self) -> list[ColumnMappingRule]:
        """List active mappings, most recently used first."""
        return self.db.list_column_mapping_rules(active_only=True)

    def delete_mapping(self, mapping_id: str) -> None:
        """Deactivate a mapping.

        Raises:
            NotFoundError: If the mapping does not exist or is already inactive
        """
        rule = self.db.get_column_mapping_rule(mapping_id)
        if rule is None or not rule.is_active:
            raise NotFoundError(column_mapping_not_found(mapping_id))
        self.db.update_column_mapping_rule(rule.id, expected_version=rule.version, is_active=False)
        logger.info("Deactivated column mapping %s", mapping_id)

    def find_for_headers(self, headers: Sequence[str]) -> Optional[ColumnMappingRule]:
        """Find the saved mapping whose signature matches ``headers``."""
        return self.db.find_column_mapping_by_signature(header_signature(headers))

    def record_use(self, mapping_id: str) -> ColumnMappingRule:
        """Advance usage counters after a mapping was reused.

        Raises:
            NotFoundError: If the mapping does not exist
            ConcurrencyConflict: If the rule changed since it was read
        """
        rule = self.db.get_column_mapping_rule(mapping_id)
        if rule is None:
            raise NotFoundError(column_mapping_not_found(mapping_id))
        return self.db.update_column_mapping_rule(
            rule.id,
            expected_version=rule.version,
            times_used=rule.times_used + 1,
            last_used_at=datetime.now(UTC),
        )
