"""Address and amount validation for Soroban calls."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from stellar_sdk import Address, StrKey

from voxelcraft.models.errors import invalid_input

DECIMALS = 7
BASE_UNITS = 10 ** DECIMALS

# All-zero ed25519 account; collectible contracts emit it as the sender of a mint
ZERO_ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"


def is_account(value: object) -> bool:
    return isinstance(value, str) and StrKey.is_valid_ed25519_public_key(value)


def is_address(value: object) -> bool:
    """Account (G...) or contract (C...) strkey."""
    return isinstance(value, str) and (
        StrKey.is_valid_ed25519_public_key(value) or StrKey.is_valid_contract(value)
    )


def require_account(value: object) -> str:
    if not is_account(value):
        raise invalid_input(f"invalid account address: {value!r}")
    return value  # type: ignore[return-value]


def require_address(value: object) -> str:
    if not is_address(value):
        raise invalid_input(f"invalid address: {value!r}")
    return value  # type: ignore[return-value]


def addr_str(addr: object) -> str:
    """Extract the string address from a stellar_sdk.Address or plain str."""
    if isinstance(addr, Address):
        return addr.address
    return str(addr)


def to_base_units(amount: str | int | Decimal, what: str = "amount") -> int:
    """Convert a decimal token amount ("1.5") to 7-decimal base units.

    Rejects non-numeric, non-positive and over-precise values.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise invalid_input(f"{what} is not a number: {amount!r}") from None
    if not value.is_finite() or value <= 0:
        raise invalid_input(f"{what} must be positive: {amount!r}")
    scaled = value * BASE_UNITS
    if scaled != scaled.to_integral_value():
        raise invalid_input(f"{what} has more than {DECIMALS} decimal places: {amount!r}")
    return int(scaled)


def from_base_units(units: int) -> str:
    """Format base units back to a decimal string without trailing zeros."""
    value = Decimal(units) / BASE_UNITS
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def require_id(value: object, what: str) -> int:
    """Non-negative integer identifier (u64 on the contract side)."""
    if isinstance(value, bool):
        raise invalid_input(f"{what} must be an integer: {value!r}")
    try:
        ident = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise invalid_input(f"{what} must be an integer: {value!r}") from None
    if ident < 0 or ident >= 2 ** 64:
        raise invalid_input(f"{what} out of range: {value!r}")
    return ident
