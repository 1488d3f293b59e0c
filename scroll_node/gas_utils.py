"""Gas price and fee arithmetic."""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from typing import Any

from .quantity import format_gwei, parse_gwei

GAS_BUFFER_PERCENT = 20
PRIORITY_MULTIPLIERS = {"low": Decimal("1.0"), "medium": Decimal("1.2"), "high": Decimal("1.5")}
PRIORITY_FEES_GWEI = {"low": "0.001", "medium": "0.01", "high": "0.1"}
BRIDGE_BASE_GAS = {"deposit": 200_000, "withdrawal": 300_000}
BRIDGE_ERC20_EXTRA_GAS = 50_000


def add_gas_buffer(estimate: int, buffer_percent: int = GAS_BUFFER_PERCENT) -> int:
    if estimate < 0:
        raise ValueError("gas estimate must be >= 0")
    return estimate * (100 + buffer_percent) // 100


def calculate_gas_price_for_priority(base_fee: int, priority: str = "medium") -> dict[str, int]:
    key = str(priority or "medium").strip().lower()
    if key not in PRIORITY_MULTIPLIERS:
        raise ValueError(f"priority must be one of {sorted(PRIORITY_MULTIPLIERS)}")
    max_fee = int((Decimal(base_fee) * PRIORITY_MULTIPLIERS[key]).to_integral_value(rounding=ROUND_CEILING))
    return {
        "max_fee_per_gas": max_fee,
        "max_priority_fee_per_gas": parse_gwei(PRIORITY_FEES_GWEI[key]),
    }


def estimate_total_fee(gas_limit: int, gas_price: int, l1_data_fee: int = 0) -> dict[str, int]:
    l2_fee = gas_limit * gas_price
    return {
        "l2_execution_fee": l2_fee,
        "l1_data_fee": l1_data_fee,
        "total_fee": l2_fee + l1_data_fee,
    }


def format_gas_price(wei: int) -> str:
    return f"{format_gwei(wei)} gwei"


def estimate_bridge_gas(direction: str, *, is_erc20: bool = False) -> int:
    key = "deposit" if str(direction).lower().startswith("dep") else "withdrawal"
    gas = BRIDGE_BASE_GAS[key]
    if is_erc20:
        gas += BRIDGE_ERC20_EXTRA_GAS
    return gas


def fee_summary(fee_data: dict[str, Any]) -> dict[str, Any]:
    """Render integer fee fields as decimal wei strings plus gwei."""
    out: dict[str, Any] = {}
    for key, value in fee_data.items():
        if value is None:
            out[key] = None
            continue
        out[key] = str(value)
        out[f"{key}_gwei"] = format_gwei(int(value))
    return out
