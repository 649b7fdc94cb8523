"""Per-operation context passed explicitly through service calls."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class OperationContext:
    """Correlation id, cancellation signal and deadline for one operation.

    ``deadline`` is a ``time.monotonic()`` timestamp.
    """

    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    deadline: Optional[float] = None

    @classmethod
    def with_timeout(cls, seconds: float, correlation_id: Optional[str] = None) -> "OperationContext":
        """Create a context whose deadline is ``seconds`` from now."""
        context = cls(deadline=time.monotonic() + seconds)
        if correlation_id is not None:
            context.correlation_id = correlation_id
        return context

    def cancel(self) -> None:
        """Request cancellation of work running under this context."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def remaining(self, default: float) -> float:
        """Seconds left before the deadline, capped at ``default``."""
        if self.deadline is None:
            return default
        return max(0.0, min(default, self.deadline - time.monotonic()))

    def log_extra(self) -> dict[str, str]:
        return {"correlation_id": self.correlation_id}
