"""CSV file parsing with delimiter and encoding detection."""

import csv
import io
import logging

from ledgersync.domain.entities import CsvParseError, CsvParseResult
from ledgersync.domain.errors import CsvParseFailure

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t")
DELIMITER_NAMES = {",": "Comma", ";": "Semicolon", "\t": "Tab"}
DELIMITER_SAMPLE_LINES = 5


def detect_encoding(content: bytes) -> str:
    """Pick a codec for the raw bytes.

    BOMs win; otherwise UTF-8 if the bytes decode, else ISO-8859-1.
    """
    if content.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if content.startswith(b"\xff\xfe") or content.startswith(b"\xfe\xff"):
        return "utf-16"
    try:
        content.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        return "iso-8859-1"


def detect_delimiter(text: str) -> str:
    """Return the delimiter used consistently across the first lines.

    Each candidate must appear the same number of times on every sampled
    line; the most frequent consistent candidate wins. Defaults to comma.
    """
    lines = []
    for line in text.splitlines():
        if line.strip():
            lines.append(line)
        if len(lines) == DELIMITER_SAMPLE_LINES:
            break

    if not lines:
        return ","

    counts = {}
    for delimiter in CANDIDATE_DELIMITERS:
        count = lines[0].count(delimiter)
        if count > 0 and all(line.count(delimiter) == count for line in lines):
            counts[delimiter] = count

    if not counts:
        return ","
    return max(counts, key=lambda d: counts[d])


class CsvParser:
    """Parses uploaded CSV bytes into header and row dictionaries."""

    def parse(self, content: bytes, file_name: str = "upload.csv") -> CsvParseResult:
        """Parse CSV content.

        Args:
            content: Raw file bytes
            file_name: Original file name, for logging

        Returns:
            CsvParseResult with all well-formed rows and row-level errors

        Raises:
            CsvParseFailure: If the content has no header row or repeats a
                column header
        """
        logger.info("Starting CSV parse for file: %s", file_name)

        encoding = detect_encoding(content)
        text = content.decode(encoding)
        delimiter = detect_delimiter(text)
        logger.debug("Detected encoding %s, delimiter %r", encoding, delimiter)

        reader = csv.reader(io.StringIO(text), delimiter=delimiter)

        headers = None
        for record in reader:
            if any(cell.strip() for cell in record):
                headers = [cell.strip() for cell in record]
                break

        if not headers:
            raise CsvParseFailure(f"CSV file '{file_name}' has no headers")

        repeated = sorted({h for h in headers if headers.count(h) > 1})
        if repeated:
            raise CsvParseFailure(
                f"CSV file '{file_name}' has duplicate column header(s): {', '.join(repr(h) for h in repeated)}"
            )

        rows = []
        errors = []
        try:
            for record in reader:
                if not any(cell.strip() for cell in record):
                    continue
                line_number = reader.line_num
                if len(record) != len(headers):
                    errors.append(
                        CsvParseError(
                            line_number=line_number,
                            message=(
                                f"Expected {len(headers)} fields but found {len(record)}"
                            ),
                        )
                    )
                    continue
                rows.append(dict(zip(headers, record)))
        except csv.Error as e:
            errors.append(CsvParseError(line_number=reader.line_num, message=f"Bad data found: {e}"))

        logger.info(
            "CSV parse completed. Rows: %d, headers: %d, errors: %d",
            len(rows),
            len(headers),
            len(errors),
        )

        return CsvParseResult(
            headers=tuple(headers),
            rows=tuple(rows),
            detected_delimiter=DELIMITER_NAMES.get(delimiter, delimiter),
            detected_encoding=encoding,
            errors=tuple(errors),
        )
