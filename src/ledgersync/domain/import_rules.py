"""Import rule domain service: payee pattern matching and rule statistics."""

import logging
import re
from datetime import datetime, UTC
from typing import Optional

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from ledgersync.database.base import Database
from ledgersync.domain.entities import CategorySuggestion, ImportRule, MatchType
from ledgersync.domain.errors import (
    ConcurrencyConflict,
    NotFoundError,
    ValidationError,
    import_rule_not_found,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1
DEFAULT_CONFIDENCE = 0.6
MAX_PATTERN_LENGTH = 200


def rule_matches(rule: ImportRule, payee: str) -> bool:
    """Case-insensitive comparison of a payee against a rule pattern.

    An invalid regular expression never matches.
    """
    pattern = rule.payee_pattern
    text = payee.strip()

    if rule.match_type == MatchType.REGEX:
        try:
            return re.search(pattern, text, re.IGNORECASE) is not None
        except re.error as e:
            logger.warning("Invalid regex pattern in rule %s: %s (%s)", rule.id, pattern, e)
            return False

    pattern = pattern.lower()
    text = text.lower()
    if rule.match_type == MatchType.EXACT:
        return text == pattern
    if rule.match_type == MatchType.CONTAINS:
        return pattern in text
    if rule.match_type == MatchType.STARTS_WITH:
        return text.startswith(pattern)
    if rule.match_type == MatchType.ENDS_WITH:
        return text.endswith(pattern)
    return False


def _suggestion_order(rule: ImportRule) -> tuple:
    # Priority 1 first, then higher confidence, then most recently used
    last_used = rule.last_used_at.timestamp() if rule.last_used_at else float("-inf")
    return (rule.priority, -rule.confidence, -last_used)


class ImportRuleEngine:
    """Suggests categories for payees and learns from user decisions."""

    def __init__(self, db: Database):
        """Initialize import rule engine.

        Args:
            db: Database instance
        """
        self.db = db

    def suggest(self, payee: str) -> list[CategorySuggestion]:
        """Suggest categories for a payee.

        Args:
            payee: Payee text from a bank statement

        Returns:
            Suggestions from every matching active rule, best first. Empty
            when nothing matches.
        """
        if not payee or not payee.strip():
            return []

        matching = [rule for rule in self.db.list_import_rules(active_only=True) if rule_matches(rule, payee)]
        matching.sort(key=_suggestion_order)

        if matching:
            logger.debug("Payee %r matched %d rule(s)", payee, len(matching))

        return [
            CategorySuggestion(
                rule=rule,
                suggested_category=rule.suggested_category,
                confidence=rule.confidence,
                matched_pattern=rule.payee_pattern,
            )
            for rule in matching
        ]

    def record_outcome(self, rule_id: str, accepted: bool) -> ImportRule:
        """Record whether a suggestion from a rule was accepted.

        Args:
            rule_id: Rule that produced the suggestion
            accepted: True if the user kept the suggested category

        Returns:
            The updated rule

        Raises:
            NotFoundError: If the rule does not exist
            ConcurrencyConflict: If the rule changed since it was read
        """
        rule = self.db.get_import_rule(rule_id)
        if rule is None:
            raise NotFoundError(import_rule_not_found(rule_id))

        times_applied = rule.times_applied + 1
        times_accepted = rule.times_accepted + (1 if accepted else 0)
        updated = self.db.update_import_rule_stats(
            rule_id,
            expected_version=rule.version,
            times_applied=times_applied,
            times_accepted=times_accepted,
            confidence=times_accepted / times_applied,
            last_used_at=datetime.now(UTC),
        )

        logger.info(
            "Recorded %s outcome for rule %s (confidence %.2f)",
            "accepted" if accepted else "rejected",
            rule_id,
            updated.confidence,
        )
        return updated

    def record_outcome_with_retry(self, rule_id: str, accepted: bool, max_attempts: int = 3) -> ImportRule:
        """Record an outcome, re-reading the rule after lost races.

        Raises:
            ConcurrencyConflict: If every attempt lost the race
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        retryer = Retrying(
            retry=retry_if_exception_type(ConcurrencyConflict),
            stop=stop_after_attempt(max_attempts),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        return retryer(self.record_outcome, rule_id, accepted)

    def create_rule(
        self,
        payee_pattern: str,
        suggested_category: str,
        match_type: MatchType = MatchType.CONTAINS,
        priority: int = DEFAULT_PRIORITY,
    ) -> ImportRule:
        """Create a rule.

        Args:
            payee_pattern: Text or regular expression to match
            suggested_category: Ledger account to suggest
            match_type: How the pattern is compared
            priority: 1 is the highest priority

        Returns:
            The new rule

        Raises:
            ValidationError: If the pattern, category or priority is invalid
        """
        payee_pattern = payee_pattern.strip() if payee_pattern else ""
        suggested_category = suggested_category.strip() if suggested_category else ""
        match_type = MatchType(match_type)

        if not payee_pattern:
            raise ValidationError("Payee pattern is required")
        if len(payee_pattern) > MAX_PATTERN_LENGTH:
            raise ValidationError(f"Payee pattern must not exceed {MAX_PATTERN_LENGTH} characters")
        if not suggested_category:
            raise ValidationError("Suggested category is required")
        if priority < 1:
            raise ValidationError("Priority must be 1 or greater")
        if match_type == MatchType.REGEX:
            try:
                re.compile(payee_pattern)
            except re.error as e:
                raise ValidationError(f"Invalid regex pattern '{payee_pattern}': {e}") from e

        rule = self.db.create_import_rule(
            payee_pattern=payee_pattern,
            match_type=match_type,
            suggested_category=suggested_category,
            priority=priority,
            confidence=DEFAULT_CONFIDENCE,
        )
        logger.info("Created import rule %s: %s %r -> %s", rule.id, match_type.value, payee_pattern, suggested_category)
        return rule

    def deactivate_rule(self, rule_id: str) -> ImportRule:
        """Deactivate a rule. Rules are never deleted.

        Raises:
            NotFoundError: If the rule does not exist or is already inactive
        """
        rule = self.db.get_import_rule(rule_id)
        if rule is None or not rule.is_active:
            raise NotFoundError(import_rule_not_found(rule_id))
        return self.db.set_import_rule_active(rule_id, expected_version=rule.version, is_active=False)

    def get_rule(self, rule_id: str) -> Optional[ImportRule]:
        return self.db.get_import_rule(rule_id)

    def list_rules(self, include_inactive: bool = False) -> list[ImportRule]:
        """List rules in priority order."""
        return self.db.list_import_rules(active_only=not include_inactive)
