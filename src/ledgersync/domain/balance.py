"""Account balance tree domain service."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Sequence

from ledgersync.domain.context import OperationContext
from ledgersync.domain.entities import BalanceEntry, BalanceNode, BalanceTree
from ledgersync.domain.money import Money
from ledgersync.ledger.runner import LedgerProcessRunner

logger = logging.getLogger(__name__)

ACCOUNT_SEPARATOR = ":"


def account_depth(account: str) -> int:
    """Number of hierarchy segments in an account path."""
    return len(account.split(ACCOUNT_SEPARATOR))


def parent_account(account: str) -> Optional[str]:
    """Parent path of an account, or None for a root account."""
    if ACCOUNT_SEPARATOR not in account:
        return None
    return account.rsplit(ACCOUNT_SEPARATOR, 1)[0]


@dataclass
class _ArenaNode:
    account: str
    balance: Money
    depth: int
    reported: bool
    children: list[str] = field(default_factory=list)


class BalanceHierarchyBuilder:
    """Turns a flat balance list into an account tree.

    Nodes live in an arena keyed by account path. Missing ancestors are
    synthesised as stubs by walking up the path, and stubs take the sum of
    their children once the tree is complete. A balance the engine reported
    directly is never overwritten, even when the node also has children.
    """

    def build(self, entries: Sequence[BalanceEntry]) -> list[BalanceNode]:
        """Build the account tree.

        Args:
            entries: Flat balance entries in engine order

        Returns:
            Root nodes, in first-encounter order
        """
        arena: dict[str, _ArenaNode] = {}
        order: list[str] = []

        for entry in entries:
            if entry.account in arena:
                logger.debug("Ignoring repeated balance entry for %s", entry.account)
                continue
            arena[entry.account] = _ArenaNode(
                account=entry.account,
                balance=entry.amount,
                depth=account_depth(entry.account),
                reported=True,
            )
            order.append(entry.account)

        roots: list[str] = []
        for account in order:
            self._attach(account, arena, roots)

        self._aggregate(arena)
        return [self._freeze(path, arena) for path in roots]

    def _attach(self, account: str, arena: dict[str, _ArenaNode], roots: list[str]) -> None:
        child = account
        while True:
            parent = parent_account(child)
            if parent is None:
                roots.append(child)
                return

            existing = parent in arena
            if not existing:
                arena[parent] = _ArenaNode(
                    account=parent,
                    balance=Money(0),
                    depth=account_depth(parent),
                    reported=False,
                )
            arena[parent].children.append(child)

            if existing:
                return
            child = parent

    def _aggregate(self, arena: dict[str, _ArenaNode]) -> None:
        # Deepest first, so children are resolved before their parents
        for node in sorted(arena.values(), key=lambda n: n.depth, reverse=True):
            if node.children and not node.reported:
                node.balance = sum((arena[c].balance for c in node.children), Money(0))

    def _freeze(self, account: str, arena: dict[str, _ArenaNode]) -> BalanceNode:
        node = arena[account]
        return BalanceNode(
            account=node.account,
            balance=node.balance,
            depth=node.depth,
            children=tuple(self._freeze(child, arena) for child in node.children),
            is_stub=not node.reported,
        )


class BalanceService:
    """Service for querying hierarchical balances."""

    def __init__(
        self,
        runner: LedgerProcessRunner,
        builder: Optional[BalanceHierarchyBuilder] = None,
    ):
        """Initialize balance service.

        Args:
            runner: Process runner used to query hledger
            builder: Tree builder (defaults to a new BalanceHierarchyBuilder)
        """
        self.runner = runner
        self.builder = builder or BalanceHierarchyBuilder()

    async def get_balance_tree(
        self,
        file_path: str,
        account_filters: Optional[Sequence[str]] = None,
        context: Optional[OperationContext] = None,
    ) -> BalanceTree:
        """Query balances and return them as a tree.

        Args:
            file_path: Ledger file path
            account_filters: Optional account queries (any may match)
            context: Operation context

        Returns:
            BalanceTree with root nodes and total balance
        """
        context = context or OperationContext()
        logger.info(
            "Querying balance tree for %s (filters: %s)",
            file_path,
            ", ".join(account_filters) if account_filters else "none",
            extra=context.log_extra(),
        )

        result = await self.runner.get_balances(file_path, account_filters, context=context)
        roots = self.builder.build(result.balances)

        logger.info("Balance tree built with %d root accounts", len(roots), extra=context.log_extra())
        return BalanceTree(
            roots=tuple(roots),
            total_balance=result.total_balance,
            as_of=datetime.now(UTC),
        )


def iter_nodes(nodes: Sequence[BalanceNode]):
    """Yield every node of a tree in pre-order."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))
