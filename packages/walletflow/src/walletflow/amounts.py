"""Decimal-string amount helpers.

Amounts cross the core as decimal strings ("0.10") and reach providers as
integer minor units (wei, satoshis, lamports). Floats are never involved.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from .exceptions import WalletflowValidationError

ZERO_BALANCE = "0.00"

AmountLike = Union[str, int, Decimal]


def parse_amount(value: AmountLike, field: str = "amount") -> Decimal:
    """Parse a decimal amount, rejecting non-finite values and floats."""
    if isinstance(value, float):
        raise WalletflowValidationError("Amounts must not be floats", field=field)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise WalletflowValidationError(f"Invalid amount: {value!r}", field=field) from e
    if not amount.is_finite():
        raise WalletflowValidationError(f"Invalid amount: {value!r}", field=field)
    return amount


def parse_positive_amount(value: AmountLike, field: str = "amount") -> Decimal:
    """Parse an amount that must be strictly greater than zero."""
    amount = parse_amount(value, field=field)
    if amount <= 0:
        raise WalletflowValidationError(f"Amount must be positive, got {value!r}", field=field)
    return amount


def to_minor_units(value: AmountLike, decimals: int) -> int:
    """Convert a decimal amount into integer minor units.

    Raises WalletflowValidationError when the amount has more precision than
    the asset supports.
    """
    amount = parse_amount(value)
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise WalletflowValidationError(
            f"Amount {value!r} exceeds {decimals} decimal places",
            field="amount",
        )
    return int(scaled)


def from_minor_units(value: Union[int, str], decimals: int) -> str:
    """Format integer minor units as a plain decimal string."""
    if isinstance(value, str):
        value = int(value, 16) if value.lower().startswith("0x") else int(value)
    amount = Decimal(value).scaleb(-decimals)
    text = format(amount.normalize(), "f")
    if "." not in text:
        return f"{text}.00"
    whole, fraction = text.split(".")
    return f"{whole}.{fraction.ljust(2, '0')}"
