"""Network throughput and gas statistics sampled from recent blocks."""

from __future__ import annotations

from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import NotFoundError, UnknownOperationError
from .formatters import gas_utilization
from .quantity import format_gwei, hex_to_int

RESOURCE = "analytics"
OPERATIONS = {
    "getNetworkStats": "Head block, gas price, chain id and latest block utilization",
    "getTPS": "Transactions per second across the last N blocks",
    "getGasStats": "Base fee statistics and utilization of the last N blocks",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

DEFAULT_BLOCK_COUNT = 10
MAX_BLOCK_COUNT = 100


def _block_count(params: dict[str, Any]) -> int:
    count = p.get_int(params, "block_count", DEFAULT_BLOCK_COUNT, minimum=1)
    return min(count, MAX_BLOCK_COUNT)


def _recent_blocks(client: ScrollClient, head: int, count: int) -> list[dict[str, Any]]:
    blocks = []
    for number in range(head, max(head - count, -1), -1):
        block = client.get_block(number)
        if block:
            blocks.append(block)
    return blocks


def _get_network_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    head = client.get_block_number()
    gas_price = client.get_gas_price()
    latest = client.get_block(head) or {}
    gas_used = hex_to_int(latest.get("gasUsed"))
    gas_limit = hex_to_int(latest.get("gasLimit"))
    return {
        "network": client.network.key,
        "chain_id": client.get_chain_id(),
        "block_number": head,
        "gas_price": str(gas_price),
        "gas_price_gwei": format_gwei(gas_price),
        "latest_block_transactions": len(latest.get("transactions") or []),
        "latest_block_gas_used": None if gas_used is None else str(gas_used),
        "latest_block_gas_limit": None if gas_limit is None else str(gas_limit),
        "latest_block_utilization_percent": gas_utilization(gas_used, gas_limit),
    }


def _get_tps(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    head = client.get_block_number()
    # The window never reaches below genesis.
    count = min(_block_count(params), head)
    start = client.get_block(head - count)
    end = client.get_block(head)
    if not start or not end:
        raise NotFoundError(f"Block range ending at {head} not available")
    total_txs = sum(len(block.get("transactions") or []) for block in _recent_blocks(client, head, count))
    elapsed = (hex_to_int(end.get("timestamp")) or 0) - (hex_to_int(start.get("timestamp")) or 0)
    tps = total_txs / elapsed if elapsed > 0 else 0.0
    return {
        "tps": f"{tps:.2f}",
        "total_transactions": total_txs,
        "time_span_seconds": elapsed,
        "block_count": count,
        "from_block": head - count + 1 if count else head,
        "to_block": head,
    }


def _get_gas_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    count = _block_count(params)
    head = client.get_block_number()
    history = []
    for block in _recent_blocks(client, head, count):
        gas_used = hex_to_int(block.get("gasUsed")) or 0
        gas_limit = hex_to_int(block.get("gasLimit")) or 0
        history.append(
            {
                "block_number": hex_to_int(block.get("number")),
                "base_fee_per_gas": hex_to_int(block.get("baseFeePerGas")) or 0,
                "gas_used": gas_used,
                "gas_limit": gas_limit,
                "utilization_percent": gas_utilization(gas_used, gas_limit),
            }
        )
    fees = [h["base_fee_per_gas"] for h in history]
    stats: dict[str, Any] = {"block_count": len(history), "history": history}
    if fees:
        avg = sum(fees) // len(fees)
        stats.update(
            {
                "min_base_fee": str(min(fees)),
                "max_base_fee": str(max(fees)),
                "avg_base_fee": str(avg),
                "avg_base_fee_gwei": format_gwei(avg),
                "avg_utilization_percent": sum(h["utilization_percent"] for h in history) // len(history),
            }
        )
    for item in history:
        for key in ("base_fee_per_gas", "gas_used", "gas_limit"):
            item[key] = str(item[key])
    return stats


_HANDLERS = {
    "getNetworkStats": _get_network_stats,
    "getTPS": _get_tps,
    "getGasStats": _get_gas_stats,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
