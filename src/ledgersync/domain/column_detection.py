"""CSV column type detection."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Sequence

from dateutil import parser as date_parser

from ledgersync.domain.entities import ColumnDetectionResult, FieldType, REQUIRED_FIELD_TYPES

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.7
FALLBACK_DESCRIPTION_CONFIDENCE = 0.6

# Ordered by how often banks use them
DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%d %b %Y",
)

AMOUNT_PATTERN = re.compile(r"^[\(\$€£]?-?\d{1,3}([.,]\d{3})*[.,]?\d{0,2}\)?$|^[\(\$€£]?-?\d+([.,]\d{1,2})?\)?$")

COLUMN_SYNONYMS: dict[FieldType, tuple[str, ...]] = {
    FieldType.DATE: (
        "date", "transaction date", "post date", "posting date", "effective date",
        "value date", "datum", "fecha", "trans date", "tran date",
    ),
    FieldType.DESCRIPTION: (
        "description", "payee", "merchant", "memo", "details", "transaction description",
        "beschreibung", "descripción", "vendor", "name", "trans description",
    ),
    FieldType.AMOUNT: (
        "amount", "transaction amount", "betrag", "monto", "value", "amt",
    ),
    FieldType.DEBIT: (
        "debit", "withdrawal", "outflow", "payment", "withdrawals", "paid out", "expense",
    ),
    FieldType.CREDIT: (
        "credit", "deposit", "inflow", "receipt", "deposits", "paid in", "income",
    ),
    FieldType.BALANCE: (
        "balance", "running balance", "running bal", "running bal.", "available balance",
        "current balance", "saldo", "bal", "ending balance",
    ),
}

SYNONYM_WEIGHTS: dict[FieldType, dict[str, float]] = {
    FieldType.DATE: {"date": 1.0, "transaction date": 0.95, "post date": 0.9, "datum": 0.85},
    FieldType.DESCRIPTION: {"description": 1.0, "payee": 0.95, "merchant": 0.9, "memo": 0.85},
    FieldType.AMOUNT: {"amount": 1.0, "transaction amount": 0.95, "betrag": 0.9},
    FieldType.DEBIT: {"debit": 1.0, "withdrawal": 0.95, "outflow": 0.9},
    FieldType.CREDIT: {"credit": 1.0, "deposit": 0.95, "inflow": 0.9},
    FieldType.BALANCE: {"balance": 1.0, "running balance": 0.95, "saldo": 0.9},
}

Rows = Sequence[Mapping[str, str]]


@dataclass(frozen=True)
class _Candidate:
    header: Optional[str]
    confidence: float


NO_CANDIDATE = _Candidate(header=None, confidence=0.0)


def header_confidence(header: str, field_type: FieldType) -> float:
    """Score how strongly a header name suggests a field type.

    Exact synonym matches use the synonym's weight (1.0 by default); substring
    matches use the weight (0.8 by default) reduced by 10%.
    """
    synonyms = COLUMN_SYNONYMS.get(field_type, ())
    weights = SYNONYM_WEIGHTS.get(field_type, {})
    normalized = header.strip().lower()

    if normalized in synonyms:
        return weights.get(normalized, 1.0)

    for synonym in synonyms:
        if synonym in normalized:
            return weights.get(synonym, 0.8) * 0.9

    return 0.0


def looks_like_date(value: str) -> bool:
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


def looks_like_amount(value: str) -> bool:
    normalized = value.strip().replace("$", "").replace("€", "").replace("£", "").replace(" ", "")
    return bool(AMOUNT_PATTERN.match(normalized))


def looks_like_text(value: str) -> bool:
    """True for free text: not a number, not a date, longer than two characters."""
    value = value.strip()
    if len(value) <= 2:
        return False
    try:
        Decimal(value.replace("$", "").replace(",", ""))
        return False
    except InvalidOperation:
        pass
    try:
        date_parser.parse(value)
        return False
    except (ValueError, OverflowError):
        return True


def _data_score(header: str, rows: Rows, predicate) -> float:
    """Share of non-blank sample values satisfying ``predicate``."""
    values = [row.get(header) for row in rows]
    values = [v for v in values if v is not None and v.strip()]
    if not values:
        return 0.0
    return sum(1 for v in values if predicate(v)) / len(values)


def _average_length(header: str, rows: Rows) -> float:
    values = [row.get(header) or "" for row in rows]
    values = [v.strip() for v in values if v.strip()]
    if not values:
        return 0.0
    return sum(len(v) for v in values) / len(values)


DATA_CHECKS = {
    FieldType.DATE: looks_like_date,
    FieldType.AMOUNT: looks_like_amount,
    FieldType.DEBIT: looks_like_amount,
    FieldType.CREDIT: looks_like_amount,
    FieldType.BALANCE: looks_like_amount,
    FieldType.DESCRIPTION: looks_like_text,
    FieldType.MEMO: looks_like_text,
}


class ColumnMappingDetector:
    """Infers which CSV columns hold which transaction fields.

    Each candidate column gets the mean of a header-name score and a sample
    data score. Only fields scoring above the threshold are mapped; the
    result is advisory and callers may override it.
    """

    def __init__(self, threshold: float = CONFIDENCE_THRESHOLD):
        self.threshold = threshold

    def detect(self, headers: Sequence[str], sample_rows: Rows) -> ColumnDetectionResult:
        """Detect column mappings.

        Args:
            headers: CSV header names
            sample_rows: Sample data rows keyed by header

        Returns:
            ColumnDetectionResult with mappings above the threshold, scores
            for every candidate field, and warnings for ambiguous columns
        """
        logger.info(
            "Starting column detection. Headers: %d, sample rows: %d",
            len(headers),
            len(sample_rows),
        )

        candidates: dict[FieldType, _Candidate] = {}

        date = self._best(headers, sample_rows, FieldType.DATE, exclude=())
        candidates[FieldType.DATE] = date

        amount = self._best(headers, sample_rows, FieldType.AMOUNT, exclude=(date.header,))
        candidates[FieldType.AMOUNT] = amount

        description = self._detect_description(headers, sample_rows, exclude=(date.header, amount.header))
        candidates[FieldType.DESCRIPTION] = description

        memo = self._best(
            headers,
            sample_rows,
            FieldType.DESCRIPTION,
            exclude=(date.header, amount.header, description.header),
        )
        candidates[FieldType.MEMO] = memo

        if amount.header is None:
            debit = self._best(headers, sample_rows, FieldType.DEBIT, exclude=())
            credit = self._best(headers, sample_rows, FieldType.CREDIT, exclude=())
            candidates[FieldType.DEBIT] = debit
            candidates[FieldType.CREDIT] = credit
            if debit.header is not None or credit.header is not None:
                candidates[FieldType.AMOUNT] = _Candidate(
                    header=None, confidence=(debit.confidence + credit.confidence) / 2
                )

        candidates[FieldType.BALANCE] = self._best(headers, sample_rows, FieldType.BALANCE, exclude=())

        return self._result(candidates)

    def _result(self, candidates: dict[FieldType, _Candidate]) -> ColumnDetectionResult:
        mappings: dict[str, str] = {}
        confidence_by_field: dict[str, float] = {}
        warnings: list[str] = []

        for field_type, candidate in candidates.items():
            if candidate.confidence <= 0:
                continue
            confidence_by_field[field_type.value] = round(candidate.confidence, 4)
            if candidate.header is None:
                continue
            if candidate.confidence > self.threshold:
                # A column maps to a single field; the first (stronger) field wins
                mappings.setdefault(candidate.header, field_type.value)
            else:
                warnings.append(
                    f"Column '{candidate.header}' may be the {field_type.value} column, "
                    f"but confidence {candidate.confidence:.2f} is below {self.threshold:.2f}. "
                    "Please verify column mapping."
                )

        all_required = True
        for field_type in REQUIRED_FIELD_TYPES:
            if confidence_by_field.get(field_type.value, 0.0) <= self.threshold:
                all_required = False
                if candidates.get(field_type, NO_CANDIDATE).header is None:
                    warnings.append(
                        f"{field_type.value.capitalize()} column not detected with sufficient "
                        "confidence. Please verify column mapping."
                    )

        logger.info(
            "Column detection completed. Detected columns: %d, all required fields detected: %s",
            len(mappings),
            all_required,
        )

        return ColumnDetectionResult(
            mappings=mappings,
            confidence_by_field=confidence_by_field,
            warnings=tuple(warnings),
            all_required_detected=all_required,
        )

    def _best(
        self,
        headers: Sequence[str],
        rows: Rows,
        field_type: FieldType,
        exclude: Sequence[Optional[str]],
    ) -> _Candidate:
        check = DATA_CHECKS[field_type]
        best = NO_CANDIDATE
        for header in headers:
            if header in exclude:
                continue
            header_score = header_confidence(header, field_type)
            if header_score == 0:
                continue
            confidence = (header_score + _data_score(header, rows, check)) / 2
            if confidence > best.confidence:
                best = _Candidate(header=header, confidence=confidence)

        if best.header is not None:
            logger.debug(
                "Detected %s column: %s, confidence: %.2f",
                field_type.value,
                best.header,
                best.confidence,
            )
        return best

    def _detect_description(
        self, headers: Sequence[str], rows: Rows, exclude: Sequence[Optional[str]]
    ) -> _Candidate:
        best = self._best(headers, rows, FieldType.DESCRIPTION, exclude)
        if best.header is not None:
            return best

        # No header hint: fall back to the longest free-text column
        lengths = [
            (header, _average_length(header, rows))
            for header in headers
            if header not in exclude
        ]
        lengths = [(h, length) for h, length in lengths if length > 5]
        if not lengths:
            return NO_CANDIDATE

        header = max(lengths, key=lambda item: item[1])[0]
        logger.debug("Detected description column by fallback (longest text): %s", header)
        return _Candidate(header=header, confidence=FALLBACK_DESCRIPTION_CONFIDENCE)
