"""Tests for duplicate transaction detection."""

import uuid
from datetime import date

from ledgersync.domain.duplicates import DuplicateDetector
from ledgersync.domain.hashing import compute_transaction_hash, normalize_payee
from ledgersync.domain.entities import CandidateTransaction, Transaction
from ledgersync.domain.money import Money


def _candidate(row_index, payee="Whole Foods", cents=-4523, account="Assets:Checking"):
    return CandidateTransaction(
        row_index=row_index,
        date=date(2024, 1, 15),
        payee=payee,
        amount=Money(cents),
        account=account,
    )


def _cached(candidate, category="Expenses:Groceries"):
    return Transaction(
        transaction_code=str(uuid.uuid4()),
        date=candidate.date,
        payee=candidate.payee,
        amount=candidate.amount,
        account=candidate.account,
        category_account=category,
        memo=None,
        hash=candidate.hash,
    )


def test_hash_ignores_payee_case_and_spacing():
    a = compute_transaction_hash(date(2024, 1, 15), "Whole  Foods", Money(-4523), "Assets:Checking")
    b = compute_transaction_hash(date(2024, 1, 15), " whole foods ", Money(-4523), " Assets:Checking ")
    assert a == b
    assert len(a) == 64


def test_hash_changes_with_identity_fields():
    base = compute_transaction_hash(date(2024, 1, 15), "Deli", Money(-100), "Assets:Checking")
    assert base != compute_transaction_hash(date(2024, 1, 16), "Deli", Money(-100), "Assets:Checking")
    assert base != compute_transaction_hash(date(2024, 1, 15), "Deli", Money(100), "Assets:Checking")
    assert base != compute_transaction_hash(date(2024, 1, 15), "Deli", Money(-100), "Assets:Savings")
    assert base != compute_transaction_hash(date(2024, 1, 15), "Cafe", Money(-100), "Assets:Checking")


def test_normalize_payee():
    assert normalize_payee("  AMAZON\tMarketplace \n") == "amazon marketplace"


def test_candidate_hash_matches_function():
    candidate = _candidate(0)
    assert candidate.hash == compute_transaction_hash(
        candidate.date, candidate.payee, candidate.amount, candidate.account
    )


def test_find_duplicates(temp_db):
    """Candidates already in the cache are reported in candidate order."""
    existing = _candidate(0, payee="Whole Foods")
    temp_db.add_transactions([_cached(existing)])
    candidates = [
        _candidate(0, payee="Shell"),
        _candidate(1, payee="WHOLE FOODS"),
        _candidate(2, payee="Whole Foods", cents=-1),
    ]

    matches = DuplicateDetector(temp_db).find_duplicates(candidates)

    assert [m.row_index for m in matches] == [1]
    assert matches[0].existing.category_account == "Expenses:Groceries"


def test_find_duplicates_empty_cache(temp_db):
    assert DuplicateDetector(temp_db).find_duplicates([_candidate(0)]) == []


def test_build_index_first_cached_wins(temp_db):
    candidate = _candidate(0)
    temp_db.add_transactions([_cached(candidate, "Expenses:First"), _cached(candidate, "Expenses:Second")])

    index = DuplicateDetector(temp_db).build_index([candidate.hash, candidate.hash])

    assert index[candidate.hash].category_account == "Expenses:First"
