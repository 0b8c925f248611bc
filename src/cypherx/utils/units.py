"""Amount scaling between human-readable decimals and smallest units."""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from cypherx.errors import InvalidAmount, UnresolvedDecimals

# uint256 needs 78 digits; leave headroom for the fractional part
_PRECISION = 100
MAX_DECIMALS = 77

AmountLike = Union[Decimal, str, int]


def _check_decimals(decimals) -> int:
    if decimals is None:
        raise UnresolvedDecimals()
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise UnresolvedDecimals(f"Token decimals must be an integer, got {decimals!r}")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise UnresolvedDecimals(f"Unsupported token decimals: {decimals}")
    return decimals


def to_decimal(value: AmountLike) -> Decimal:
    """Coerce user input to a finite Decimal.

    Floats are rejected: their binary representation is not the number the
    user typed.
    """
    if isinstance(value, float):
        raise InvalidAmount("Amounts must be given as strings or Decimals, not floats")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidAmount(f"Invalid amount: {value!r}")
    return amount


def parse_amount(value: AmountLike) -> Decimal:
    """Parse a positive amount entered by the user."""
    amount = to_decimal(value)
    if amount <= 0:
        raise InvalidAmount()
    return amount


def to_smallest_unit(amount: AmountLike, decimals: int) -> int:
    """Convert a human amount to integer base units.

    Raises:
        InvalidAmount: negative, malformed, or finer than the token can represent
        UnresolvedDecimals: decimals missing or out of range
    """
    decimals = _check_decimals(decimals)
    value = to_decimal(amount)
    if value < 0:
        raise InvalidAmount("Amount cannot be negative")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(decimals)
        integral = scaled.to_integral_value()
        if scaled != integral:
            raise InvalidAmount(f"Amount has more than {decimals} decimal places")
        return int(integral)


def from_smallest_unit(raw: int, decimals: int) -> Decimal:
    """Convert integer base units back to an exact Decimal."""
    decimals = _check_decimals(decimals)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(int(raw)).scaleb(-decimals) if raw else Decimal(0)


def format_amount(value: Decimal) -> str:
    """Format an amount for display.

    >= 1 -> 4 places, >= 0.01 -> 6, >= 0.0001 -> 8, smaller -> scientific.
    """
    if value == 0:
        return "0"
    magnitude = abs(value)
    if magnitude >= 1:
        return f"{value:.4f}"
    if magnitude >= Decimal("0.01"):
        return f"{value:.6f}"
    if magnitude >= Decimal("0.0001"):
        return f"{value:.8f}"
    return f"{value:.4e}"
