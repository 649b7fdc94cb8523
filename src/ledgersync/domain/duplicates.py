"""Duplicate transaction detection."""

import logging
from typing import Mapping, Optional, Sequence

from ledgersync.database.base import Database
from ledgersync.domain.entities import CandidateTransaction, DuplicateMatch, Transaction

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """Finds candidate rows that are already in the transaction cache.

    Matching is exact on the content hash only.
    """

    def __init__(self, db: Database):
        """Initialize duplicate detector.

        Args:
            db: Database instance
        """
        self.db = db

    def find_duplicate(
        self, candidate: CandidateTransaction, existing_index: Mapping[str, Transaction]
    ) -> Optional[Transaction]:
        """Return the cached transaction matching ``candidate``, if any."""
        return existing_index.get(candidate.hash)

    def build_index(self, hashes: Sequence[str]) -> dict[str, Transaction]:
        """Load cached transactions for ``hashes`` keyed by hash.

        The first cached transaction wins when several share a hash.
        """
        index: dict[str, Transaction] = {}
        for txn in self.db.find_transactions_by_hashes(list(set(hashes))):
            index.setdefault(txn.hash, txn)
        return index

    def find_duplicates(self, candidates: Sequence[CandidateTransaction]) -> list[DuplicateMatch]:
        """Check a batch of candidates with a single store lookup.

        Returns:
            One DuplicateMatch per candidate that is already cached, in
            candidate order
        """
        logger.info("Detecting duplicates for %d transactions", len(candidates))

        index = self.build_index([c.hash for c in candidates])
        matches = []
        for candidate in candidates:
            existing = self.find_duplicate(candidate, index)
            if existing is not None:
                logger.debug(
                    "Duplicate found: payee=%s date=%s amount=%s row=%d",
                    existing.payee,
                    existing.date,
                    existing.amount,
                    candidate.row_index,
                )
                matches.append(DuplicateMatch(row_index=candidate.row_index, existing=existing))

        logger.info(
            "Duplicate detection complete. Found %d duplicates out of %d transactions",
            len(matches),
            len(candidates),
        )
        return matches
