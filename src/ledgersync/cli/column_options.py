"""Shared CLI helpers for column mapping options."""

from pathlib import Path

import click

from ledgersync.domain.column_mapping import VALID_FIELD_TYPES

MAP_OPTION_HELP = "Column mapping as 'Header=field' (repeatable); field is one of: " + ", ".join(
    sorted(VALID_FIELD_TYPES)
)


def parse_column_mappings(values: tuple[str, ...]) -> dict[str, str] | None:
    """Turn repeated ``Header=field`` options into a mapping dict."""
    if not values:
        return None

    mappings = {}
    for value in values:
        header, sep, field = value.rpartition("=")
        if not sep or not header.strip() or not field.strip():
            raise click.BadParameter(f"Expected 'Header=field', got '{value}'", param_hint="--map")
        field = field.strip().lower()
        if field not in VALID_FIELD_TYPES:
            raise click.BadParameter(f"Unknown field type '{field}'", param_hint="--map")
        mappings[header.strip()] = field
    return mappings


def read_csv_bytes(csv_file: str) -> bytes:
    return Path(csv_file).read_bytes()
