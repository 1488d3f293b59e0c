"""Parsers and formatters for Ethereum quantities and ether-denominated amounts."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

UNIT_DECIMALS = {"wei": 0, "gwei": 9, "ether": 18}


def parse_nonnegative_quantity_str(raw: str) -> int:
    value = str(raw).strip()
    if not value:
        raise ValueError("quantity cannot be empty")
    if value.startswith("0x"):
        return int(value, 16)
    if not value.isdigit():
        raise ValueError("quantity must be a decimal integer or 0x-prefixed hex quantity")
    return int(value, 10)


def parse_nonnegative_quantity(value: Any) -> tuple[bool, int, str]:
    if isinstance(value, bool):
        return False, 0, "value cannot be boolean"
    if isinstance(value, int):
        if value < 0:
            return False, 0, "value must be non-negative"
        return True, value, ""
    if not isinstance(value, str):
        return False, 0, "value must be int or string"

    raw = value.strip()
    if not raw:
        return False, 0, "value cannot be empty"
    if raw.startswith("0x"):
        try:
            return True, int(raw, 16), ""
        except ValueError:
            return False, 0, "value must be a decimal integer or 0x-prefixed hex quantity"
    if raw.isdigit():
        return True, int(raw, 10), ""
    return False, 0, "value must be a decimal integer or 0x-prefixed hex quantity"


def hex_to_int(value: Any) -> int | None:
    """Decode an RPC quantity field; missing fields stay None."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("quantity cannot be boolean")
    if isinstance(value, int):
        return value
    return parse_nonnegative_quantity_str(value)


def to_hex_quantity(value: int) -> str:
    if value < 0:
        raise ValueError("quantity must be non-negative")
    return hex(value)


def _trim_decimal_string(value: str) -> str:
    text = str(value).strip()
    if "." not in text:
        return text
    whole, frac = text.split(".", 1)
    frac = frac.rstrip("0")
    return whole if not frac else f"{whole}.{frac}"


def format_units(value: int, decimals: int) -> str:
    if decimals < 0:
        raise ValueError("decimals must be >= 0")
    negative = value < 0
    value = abs(value)
    if decimals == 0:
        text = str(value)
    else:
        whole, frac = divmod(value, 10**decimals)
        text = _trim_decimal_string(f"{whole}.{frac:0{decimals}d}")
    return f"-{text}" if negative else text


def parse_units(value: Any, decimals: int) -> int:
    if isinstance(value, bool):
        raise ValueError("amount cannot be boolean")
    if isinstance(value, int):
        return value * 10**decimals
    raw = str(value).strip()
    if not raw:
        raise ValueError("amount cannot be empty")
    try:
        amount = Decimal(raw)
    except InvalidOperation as err:
        raise ValueError(f"invalid amount: {raw}") from err
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {raw}")
    # Integer scaling keeps every digit regardless of the Decimal context precision.
    sign, digits, exponent = amount.as_tuple()
    coefficient = int("".join(map(str, digits)) or "0")
    shift = exponent + decimals
    if shift >= 0:
        scaled = coefficient * 10**shift
    else:
        scaled, remainder = divmod(coefficient, 10**-shift)
        if remainder:
            raise ValueError(f"amount {raw} has more than {decimals} decimal places")
    return -scaled if sign else scaled


def format_ether(wei: int) -> str:
    return format_units(wei, 18)


def parse_ether(value: Any) -> int:
    return parse_units(value, 18)


def format_gwei(wei: int) -> str:
    return format_units(wei, 9)


def parse_gwei(value: Any) -> int:
    return parse_units(value, 9)


def convert_units(value: Any, from_unit: str, to_unit: str) -> str:
    src = str(from_unit).strip().lower()
    dst = str(to_unit).strip().lower()
    if src not in UNIT_DECIMALS:
        raise ValueError(f"unsupported unit: {from_unit}")
    if dst not in UNIT_DECIMALS:
        raise ValueError(f"unsupported unit: {to_unit}")
    wei = parse_units(value, UNIT_DECIMALS[src])
    return format_units(wei, UNIT_DECIMALS[dst])
