"""Fixed-point money value."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")

DecimalLike = Union[Decimal, int, str, float]


@dataclass(frozen=True, order=True)
class Money:
    """Monetary amount stored as integer cents.

    Arithmetic never leaves the integer domain; decimals only appear when
    converting in (``from_decimal``) or out (``to_decimal``, ``str``).
    """

    cents: int = 0

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money cents must be an int, got {type(self.cents).__name__}")

    @classmethod
    def from_decimal(cls, amount: DecimalLike) -> "Money":
        """Create Money from a decimal amount, rounding half-up to the cent.

        Floats are converted through their shortest repr so that ``10.10``
        means exactly ten dollars and ten cents.
        """
        if isinstance(amount, float):
            value = Decimal(repr(amount))
        else:
            value = Decimal(amount)
        return cls(int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    def to_decimal(self) -> Decimal:
        """Return the amount as a two-place Decimal."""
        return (Decimal(self.cents) / 100).quantize(CENT)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents + other.cents)

    def __radd__(self, other):
        # Lets sum() start from 0
        if other == 0:
            return self
        return self.__add__(other)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.cents - other.cents)

    def __mul__(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            return NotImplemented
        return Money(self.cents * factor)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return Money(-self.cents)

    def __abs__(self) -> "Money":
        return Money(abs(self.cents))

    def __bool__(self) -> bool:
        return self.cents != 0

    def format(self, commodity: str = "$") -> str:
        """Format with a commodity symbol, e.g. ``$1,045.80`` or ``-$3.00``."""
        sign = "-" if self.cents < 0 else ""
        return f"{sign}{commodity}{abs(self.to_decimal()):,.2f}"

    def __str__(self) -> str:
        return self.format()
