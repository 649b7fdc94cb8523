"""Rendering transactions as hledger journal entries."""

from typing import Iterable

from ledgersync.domain.entities import Transaction
from ledgersync.domain.errors import ValidationError

AMOUNT_COLUMN = 52
POSTING_INDENT = "  "
MIN_AMOUNT_GAP = 2


def format_amount(transaction: Transaction) -> str:
    return f"${transaction.amount.to_decimal():.2f}"


def journal_text(value: str, keep_pipes: bool = False) -> str:
    """Single-line description text that hledger reads back unchanged.

    ``;`` starts a comment anywhere on the line and the first ``|`` splits
    payee from note, so both are replaced.
    """
    text = " ".join(value.split()).replace(";", ",")
    if not keep_pipes:
        text = text.replace("|", "/")
    return text


class TransactionFormatter:
    """Formats transactions in hledger journal syntax.

    The primary account posting carries the bank-signed amount and the
    category posting is left for hledger to balance::

        2025-01-15 (550e8400-e29b-41d4-a716-446655440000) Whole Foods | memo
          Assets:Checking                                   $-45.23
          Expenses:Groceries
    """

    def format_transaction(self, transaction: Transaction) -> str:
        """Render one transaction, ending with a newline.

        Raises:
            ValidationError: If payee, accounts or transaction code are empty
        """
        self._validate(transaction)

        header = (
            f"{transaction.date.isoformat()} ({transaction.transaction_code}) "
            f"{journal_text(transaction.payee)}"
        )
        if transaction.memo and transaction.memo.strip():
            header += f" | {journal_text(transaction.memo, keep_pipes=True)}"

        return "\n".join(
            [
                header,
                self._posting(transaction.account.strip(), format_amount(transaction)),
                POSTING_INDENT + transaction.category_account.strip(),
            ]
        ) + "\n"

    def format_transactions(self, transactions: Iterable[Transaction]) -> str:
        """Render transactions separated by blank lines."""
        return "\n".join(self.format_transaction(txn) for txn in transactions)

    def accounts_for(self, transactions: Iterable[Transaction]) -> set[str]:
        """Account names referenced by ``transactions``."""
        accounts = set()
        for txn in transactions:
            if txn.account.strip():
                accounts.add(txn.account.strip())
            if txn.category_account.strip():
                accounts.add(txn.category_account.strip())
        return accounts

    def _posting(self, account: str, amount: str) -> str:
        line = POSTING_INDENT + account
        gap = max(MIN_AMOUNT_GAP, AMOUNT_COLUMN - len(line))
        return line + " " * gap + amount

    def _validate(self, transaction: Transaction) -> None:
        if not transaction.payee or not transaction.payee.strip():
            raise ValidationError("Transaction payee cannot be empty")
        if not transaction.account or not transaction.account.strip():
            raise ValidationError("Transaction account cannot be empty")
        if not transaction.category_account or not transaction.category_account.strip():
            raise ValidationError("Transaction category account cannot be empty")
        if not transaction.transaction_code:
            raise ValidationError("Transaction code cannot be empty")
