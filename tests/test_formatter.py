"""Tests for rendering transactions as journal entries."""

from datetime import date

import pytest

from ledgersync.domain.entities import Transaction
from ledgersync.domain.errors import ValidationError
from ledgersync.domain.money import Money
from ledgersync.ledger.formatter import AMOUNT_COLUMN, TransactionFormatter, journal_text

CODE = "550e8400-e29b-41d4-a716-446655440000"


def _txn(**overrides):
    values = dict(
        transaction_code=CODE,
        date=date(2025, 1, 15),
        payee="Whole Foods",
        amount=Money(-4523),
        account="Assets:Checking",
        category_account="Expenses:Groceries",
        memo=None,
        hash="h",
    )
    values.update(overrides)
    return Transaction(**values)


def test_format_transaction():
    text = TransactionFormatter().format_transaction(_txn())

    assert text == (
        f"2025-01-15 ({CODE}) Whole Foods\n"
        f"  Assets:Checking{' ' * (AMOUNT_COLUMN - 17)}$-45.23\n"
        "  Expenses:Groceries\n"
    )


def test_amount_starts_at_fixed_column():
    lines = TransactionFormatter().format_transaction(_txn(amount=Money(250000))).splitlines()
    assert lines[1].index("$") == AMOUNT_COLUMN
    assert lines[1].endswith("$2500.00")


def test_long_account_keeps_gap():
    account = "Assets:" + "A" * 60
    line = TransactionFormatter().format_transaction(_txn(account=account)).splitlines()[1]
    assert line == f"  {account}  $-45.23"


def test_memo_and_whitespace():
    text = TransactionFormatter().format_transaction(_txn(payee="Whole\nFoods ", memo=" weekly  shop "))
    assert text.splitlines()[0] == f"2025-01-15 ({CODE}) Whole Foods | weekly shop"


@pytest.mark.parametrize(
    "field,message",
    [
        ("payee", "payee"),
        ("account", "account cannot"),
        ("category_account", "category account"),
        ("transaction_code", "code"),
    ],
)
def test_empty_fields_rejected(field, message):
    with pytest.raises(ValidationError, match=message):
        TransactionFormatter().format_transaction(_txn(**{field: " " if field != "transaction_code" else ""}))


def test_format_transactions_separated_by_blank_line():
    text = TransactionFormatter().format_transactions([_txn(), _txn(payee="Deli")])
    entries = text.split("\n\n")
    assert len(entries) == 2
    assert entries[1].startswith(f"2025-01-15 ({CODE}) Deli")


def test_accounts_for():
    accounts = TransactionFormatter().accounts_for([_txn(), _txn(category_account="Expenses:Dining")])
    assert accounts == {"Assets:Checking", "Expenses:Groceries", "Expenses:Dining"}


def test_comment_and_pipe_characters_are_replaced():
    """Payees keep their full text when hledger reads the entry back."""
    text = TransactionFormatter().format_transaction(_txn(payee="AMAZON;REF 123|MKT", memo="order;42 | gift"))
    assert text.splitlines()[0] == f"2025-01-15 ({CODE}) AMAZON,REF 123/MKT | order,42 | gift"


def test_journal_text():
    assert journal_text("a;b|c") == "a,b/c"
    assert journal_text("a;b|c", keep_pipes=True) == "a,b|c"
    assert journal_text("  two\n lines ") == "two lines"
