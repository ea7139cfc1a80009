"""
Value objects: Currency and Money.

Responsibility:
    Currency-tagged decimal amounts for invoice totals and line values.
    Arithmetic across currencies is refused rather than coerced.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Amounts are always ``Decimal``; floats are rejected at construction.
    - Currency codes are three uppercase letters (ISO 4217 shape).
    - Adding or comparing Money of different currencies raises
      ``CurrencyMismatchError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from payables_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError

# ISO 4217 minor units for currencies that differ from the default of 2.
_MINOR_UNITS: dict[str, int] = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "CLP": 0,
    "ISK": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Validated and normalized (uppercased) on construction.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.strip().upper() if isinstance(self.code, str) else ""
        if len(normalized) != 3 or not normalized.isalpha():
            raise InvalidCurrencyError(str(self.code))
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return _MINOR_UNITS.get(self.code, 2)

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True, slots=True)
class Money:
    """
    Immutable currency-tagged decimal amount.

    Contract:
        Construct with ``Money.of(amount, currency)``; strings and ints are
        converted to ``Decimal``, floats are refused.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise TypeError("Money amounts must not be float")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except InvalidOperation as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def rounded(self) -> Money:
        """Round to the currency's minor units (half-up)."""
        quantum = Decimal(1).scaleb(-self.currency.decimal_places)
        return Money(self.amount.quantize(quantum, rounding=ROUND_HALF_UP), self.currency)

    def _check(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Decimal | int) -> Money:
        if isinstance(factor, float):
            raise TypeError("Money cannot be multiplied by float")
        return Money(self.amount * Decimal(factor), self.currency)

    def __lt__(self, other: Money) -> bool:
        self._check(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        self._check(other)
        return self.amount <= other.amount

    def __str__(self) -> str:
        return f"{self.rounded().amount} {self.currency.code}"
