"""Shared pytest fixtures for ledgersync tests."""

import json
import os
import stat
import tempfile
import textwrap

import pytest

from ledgersync.database.factories import create_sqlite_database
from ledgersync.domain.column_mapping import ColumnMappingService
from ledgersync.domain.import_rules import ImportRuleEngine
from ledgersync.ledger.binary import BinaryLocator
from ledgersync.ledger.runner import LedgerProcessRunner


def balance_row(account, mantissa, places=2, commodity="$"):
    """One account row of ``hledger bal -O json`` output."""
    amount = {
        "acommodity": commodity,
        "aquantity": {
            "decimalMantissa": mantissa,
            "decimalPlaces": places,
            "floatingPoint": mantissa / 10**places,
        },
    }
    return [account, account, 0, [amount]]


SAMPLE_BALANCES = [
    [
        balance_row("Assets:Bank:Checking", 104580),
        balance_row("Assets:Bank:Savings", 500000),
        balance_row("Expenses:Food", 4523),
    ],
    [],
]


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def make_hledger(tmp_path):
    """Factory writing an executable stand-in for hledger.

    The script body receives hledger's arguments as ``$@``.
    """

    def _make(body, name="hledger"):
        path = tmp_path / "bin" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def fake_hledger(make_hledger):
    """hledger stand-in: ``bal`` prints SAMPLE_BALANCES, ``check`` rejects files containing BROKEN."""
    return make_hledger(
        f"""\
        case "$1" in
          bal)
            cat <<'JSON'
        {json.dumps(SAMPLE_BALANCES)}
        JSON
            ;;
          check)
            if grep -q BROKEN "$3"; then
              echo "hledger: Error: $3:3: unbalanced transaction" >&2
              exit 1
            fi
            ;;
          *)
            echo "unknown command $1" >&2
            exit 2
            ;;
        esac
        """
    )


@pytest.fixture
def runner(fake_hledger):
    """Process runner using the fake hledger."""
    return LedgerProcessRunner(BinaryLocator(str(fake_hledger)), timeout=5.0)


@pytest.fixture
def ledger_file(tmp_path):
    """Path of a (not yet existing) ledger file."""
    return str(tmp_path / "ledger" / "main.hledger")


@pytest.fixture
def rule_engine(temp_db):
    """Create an ImportRuleEngine with a temporary database."""
    return ImportRuleEngine(temp_db)


@pytest.fixture
def mapping_service(temp_db):
    """Create a ColumnMappingService with a temporary database."""
    return ColumnMappingService(temp_db)


@pytest.fixture
def sample_csv():
    """Bank export with a single signed amount column."""
    return (
        "Date,Description,Amount\n"
        "2024-01-15,Whole Foods Market,-45.23\n"
        "2024-01-16,Shell Gas Station,-30.00\n"
        "2024-01-17,Acme Corp Payroll,2500.00\n"
    ).encode("utf-8")


@pytest.fixture
def debit_credit_csv():
    """Bank export with separate debit and credit columns."""
    return (
        "Date,Description,Debit,Credit\n"
        "01/15/2024,Whole Foods Market,45.23,\n"
        "01/17/2024,Acme Corp Payroll,,2500.00\n"
    ).encode("utf-8")


@pytest.fixture
def sample_csv_file(tmp_path, sample_csv):
    """sample_csv written to disk."""
    path = tmp_path / "statement.csv"
    path.write_bytes(sample_csv)
    return path


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()

