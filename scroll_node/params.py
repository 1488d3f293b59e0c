"""Typed accessors for operation parameter objects.

Keys are snake_case; the camelCase spelling of a key is accepted as an alias.
Every accessor raises ValueError with the parameter name on bad input.
"""

from __future__ import annotations

import json
import re
from typing import Any

from .address_utils import require_address
from .quantity import parse_nonnegative_quantity, parse_units

BLOCK_TAGS = {"latest", "pending", "earliest", "safe", "finalized"}
HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")
HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_MISSING = object()


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def lookup(params: dict[str, Any], key: str, default: Any = None) -> Any:
    for candidate in (key, _camel(key)):
        if candidate in params and params[candidate] is not None and params[candidate] != "":
            return params[candidate]
    return default


def require(params: dict[str, Any], key: str) -> Any:
    value = lookup(params, key, _MISSING)
    if value is _MISSING:
        raise ValueError(f"{key} is required")
    return value


def get_str(params: dict[str, Any], key: str, default: str | None = None, *, required: bool = False) -> str | None:
    value = require(params, key) if required else lookup(params, key, default)
    if value is None:
        return None
    return str(value).strip()


def get_address(params: dict[str, Any], key: str, *, required: bool = True, default: str | None = None) -> str | None:
    value = lookup(params, key)
    if value is None:
        if required:
            raise ValueError(f"{key} is required")
        return default
    return require_address(value, field=key)


def get_int(
    params: dict[str, Any],
    key: str,
    default: int | None = None,
    *,
    required: bool = False,
    minimum: int | None = 0,
) -> int | None:
    value = require(params, key) if required else lookup(params, key, default)
    if value is None:
        return None
    ok, parsed, err = parse_nonnegative_quantity(value.strip() if isinstance(value, str) else value)
    if not ok:
        raise ValueError(f"{key}: {err}")
    if minimum is not None and parsed < minimum:
        raise ValueError(f"{key} must be >= {minimum}")
    return parsed


def get_float(params: dict[str, Any], key: str, default: float) -> float:
    value = lookup(params, key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise ValueError(f"{key} must be a number") from err


def get_bool(params: dict[str, Any], key: str, default: bool = False) -> bool:
    value = lookup(params, key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0", "yes", "no"}:
        return value.strip().lower() in {"true", "1", "yes"}
    if isinstance(value, int):
        return bool(value)
    raise ValueError(f"{key} must be a boolean")


def get_list(params: dict[str, Any], key: str, *, required: bool = False) -> list[Any]:
    """List from a JSON array, a JSON-encoded array string, or a comma-separated string."""
    value = require(params, key) if required else lookup(params, key, [])
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            return get_json(params, key)
        return [item.strip() for item in text.split(",") if item.strip()]
    raise ValueError(f"{key} must be an array or comma-separated string")


def get_json(params: dict[str, Any], key: str, default: Any = None, *, required: bool = False) -> Any:
    value = require(params, key) if required else lookup(params, key, default)
    if isinstance(value, str):
        text = value.strip()
        if text[:1] in "[{":
            try:
                return json.loads(text)
            except json.JSONDecodeError as err:
                raise ValueError(f"{key} is not valid JSON: {err}") from err
    return value


def get_hex(params: dict[str, Any], key: str, default: str | None = None, *, required: bool = False) -> str | None:
    value = get_str(params, key, default, required=required)
    if value is None:
        return None
    if not HEX_RE.fullmatch(value) or len(value) % 2 != 0:
        raise ValueError(f"{key} must be even-length 0x-prefixed hex")
    return value


def get_hash(params: dict[str, Any], key: str = "tx_hash") -> str:
    value = get_str(params, key, required=True)
    if not HASH_RE.fullmatch(value):
        raise ValueError(f"{key} must be a 32-byte 0x-prefixed hash")
    return value.lower()


def get_block_id(params: dict[str, Any], key: str = "block_tag", default: str = "latest") -> str:
    """Block tag or number rendered as a JSON-RPC block parameter.

    ``block_tag="specific"`` reads the number from ``block_number``.
    """
    value = lookup(params, key)
    if value is None:
        value = lookup(params, "block")
    if value is None or value == "specific":
        number = lookup(params, "block_number")
        if number is not None:
            value = number
        elif value == "specific":
            raise ValueError("block_number is required when block_tag is specific")
        else:
            value = default
    if isinstance(value, str) and value.strip().lower() in BLOCK_TAGS:
        return value.strip().lower()
    ok, parsed, err = parse_nonnegative_quantity(value.strip() if isinstance(value, str) else value)
    if not ok:
        raise ValueError(f"{key} must be a block tag ({sorted(BLOCK_TAGS)}) or block number: {err}")
    return hex(parsed)


def get_amount(params: dict[str, Any], key: str, decimals: int = 18, *, required: bool = True) -> int | None:
    """Decimal amount in whole units (e.g. ``"0.5"`` ETH) converted to base units."""
    value = require(params, key) if required else lookup(params, key)
    if value is None:
        return None
    amount = parse_units(value, decimals)
    if amount < 0:
        raise ValueError(f"{key} must be non-negative")
    return amount


def get_choice(params: dict[str, Any], key: str, choices: set[str] | tuple[str, ...], default: str) -> str:
    value = str(lookup(params, key, default)).strip()
    if value not in choices:
        raise ValueError(f"{key} must be one of {sorted(choices)}")
    return value
