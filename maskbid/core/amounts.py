"""
Fixed-point currency amounts.

Bid amounts, reserve prices and deposits are integers in the escrow
currency's minor units (USDC: 6 decimals). Floats are rejected outright.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

DEFAULT_DECIMALS = 6
MAX_UINT256 = 2**256 - 1
UINT256_DIGITS = len(str(MAX_UINT256))

AmountLike = Union[int, str, Decimal]


def to_minor_units(value: AmountLike, decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Convert a decimal currency value to integer minor units.

    '1500' -> 1500000000, Decimal('0.5') -> 500000 (6 decimals).

    Raises:
        ValueError: for floats, non-numeric strings, negative values or more
            fractional digits than the currency carries.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Amount must not be a float or bool, got {value!r}")

    if isinstance(value, int):
        amount = Decimal(value)
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {value!r}")

    # Scale on the digit tuple: Decimal arithmetic would round to the context
    # precision and signal Overflow on extreme exponents
    _, digits, exponent = amount.as_tuple()
    if not any(digits):
        return 0

    shift = exponent + decimals
    if shift < 0:
        if any(digits[shift:]):
            raise ValueError(f"Amount {value!r} has more than {decimals} decimal places")
        digits = digits[:shift]
        shift = 0

    if len(digits) + shift > UINT256_DIGITS:
        raise ValueError(f"Amount {value!r} exceeds uint256")
    units = int("".join(str(d) for d in digits)) * 10 ** shift
    if units > MAX_UINT256:
        raise ValueError(f"Amount {value!r} exceeds uint256")
    return units


def format_minor_units(units: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render minor units as a decimal string: 250000000 -> '250.000000'."""
    sign = "-" if units < 0 else ""
    units = abs(units)
    if decimals == 0:
        return f"{sign}{units}"
    whole, frac = divmod(units, 10**decimals)
    return f"{sign}{whole}.{frac:0{decimals}d}"
