"""Content hashes identifying logical transactions."""

import hashlib
from datetime import date

from ledgersync.domain.money import Money


def normalize_payee(payee: str) -> str:
    """Lower-case a payee and collapse runs of whitespace."""
    return " ".join(payee.lower().split())


def compute_transaction_hash(txn_date: date, payee: str, amount: Money, account: str) -> str:
    """Digest of the fields that identify a logical transaction.

    Two transactions with the same date, normalised payee, amount and
    primary account hash identically regardless of where they came from.
    """
    data = f"{txn_date.isoformat()}|{normalize_payee(payee)}|{amount.cents}|{account.strip()}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
