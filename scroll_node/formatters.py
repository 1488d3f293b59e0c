"""Render raw JSON-RPC objects as snake_case result dicts."""

from __future__ import annotations

import datetime as dt
from typing import Any

from eth_utils import to_checksum_address

from .client import EXPLORER_NO_KEY_MESSAGE
from .quantity import format_ether, format_gwei, hex_to_int


def _addr(value: Any) -> str | None:
    if not value:
        return None
    return to_checksum_address(str(value).lower())


def _num_str(value: Any) -> str | None:
    parsed = hex_to_int(value)
    return None if parsed is None else str(parsed)


def iso_timestamp(seconds: int | None) -> str | None:
    if seconds is None:
        return None
    return dt.datetime.fromtimestamp(seconds, tz=dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_transaction(tx: dict[str, Any]) -> dict[str, Any]:
    value = hex_to_int(tx.get("value")) or 0
    gas_price = hex_to_int(tx.get("gasPrice"))
    return {
        "hash": tx.get("hash"),
        "from": _addr(tx.get("from")),
        "to": _addr(tx.get("to")),
        "value": str(value),
        "value_eth": format_ether(value),
        "nonce": hex_to_int(tx.get("nonce")),
        "gas_limit": _num_str(tx.get("gas")),
        "gas_price": None if gas_price is None else str(gas_price),
        "gas_price_gwei": None if gas_price is None else format_gwei(gas_price),
        "max_fee_per_gas": _num_str(tx.get("maxFeePerGas")),
        "max_priority_fee_per_gas": _num_str(tx.get("maxPriorityFeePerGas")),
        "data": tx.get("input") or tx.get("data") or "0x",
        "block_number": hex_to_int(tx.get("blockNumber")),
        "block_hash": tx.get("blockHash"),
        "transaction_index": hex_to_int(tx.get("transactionIndex")),
        "type": hex_to_int(tx.get("type")),
        "chain_id": hex_to_int(tx.get("chainId")),
    }


def format_log(log: dict[str, Any]) -> dict[str, Any]:
    return {
        "address": _addr(log.get("address")),
        "topics": list(log.get("topics") or []),
        "data": log.get("data") or "0x",
        "block_number": hex_to_int(log.get("blockNumber")),
        "block_hash": log.get("blockHash"),
        "transaction_hash": log.get("transactionHash"),
        "transaction_index": hex_to_int(log.get("transactionIndex")),
        "log_index": hex_to_int(log.get("logIndex")),
        "removed": bool(log.get("removed", False)),
    }


def receipt_status(receipt: dict[str, Any]) -> str:
    return "success" if hex_to_int(receipt.get("status")) == 1 else "failed"


def format_receipt(receipt: dict[str, Any], *, include_logs: bool = True) -> dict[str, Any]:
    gas_used = hex_to_int(receipt.get("gasUsed")) or 0
    effective = hex_to_int(receipt.get("effectiveGasPrice"))
    out: dict[str, Any] = {
        "transaction_hash": receipt.get("transactionHash"),
        "status": receipt_status(receipt),
        "block_number": hex_to_int(receipt.get("blockNumber")),
        "block_hash": receipt.get("blockHash"),
        "transaction_index": hex_to_int(receipt.get("transactionIndex")),
        "from": _addr(receipt.get("from")),
        "to": _addr(receipt.get("to")),
        "contract_address": _addr(receipt.get("contractAddress")),
        "gas_used": str(gas_used),
        "cumulative_gas_used": _num_str(receipt.get("cumulativeGasUsed")),
        "effective_gas_price": None if effective is None else str(effective),
        "fee_wei": None if effective is None else str(gas_used * effective),
        "l1_fee": _num_str(receipt.get("l1Fee")),
        "logs_count": len(receipt.get("logs") or []),
    }
    if include_logs:
        out["logs"] = [format_log(log) for log in receipt.get("logs") or []]
    return out


def format_block(block: dict[str, Any], *, full_transactions: bool = False) -> dict[str, Any]:
    timestamp = hex_to_int(block.get("timestamp"))
    txs = block.get("transactions") or []
    if full_transactions:
        transactions: list[Any] = [format_transaction(tx) if isinstance(tx, dict) else tx for tx in txs]
    else:
        transactions = [tx.get("hash") if isinstance(tx, dict) else tx for tx in txs]
    return {
        "number": hex_to_int(block.get("number")),
        "hash": block.get("hash"),
        "parent_hash": block.get("parentHash"),
        "timestamp": timestamp,
        "timestamp_iso": iso_timestamp(timestamp),
        "nonce": block.get("nonce"),
        "difficulty": _num_str(block.get("difficulty")),
        "gas_limit": _num_str(block.get("gasLimit")),
        "gas_used": _num_str(block.get("gasUsed")),
        "miner": _addr(block.get("miner")),
        "extra_data": block.get("extraData"),
        "base_fee_per_gas": _num_str(block.get("baseFeePerGas")),
        "transaction_count": len(txs),
        "transactions": transactions,
    }


def gas_utilization(gas_used: int | None, gas_limit: int | None) -> int:
    if not gas_limit:
        return 0
    return (gas_used or 0) * 100 // gas_limit


def explorer_unavailable(**extra: Any) -> dict[str, Any]:
    """Result returned by explorer-backed operations when no Scrollscan key is configured."""
    out: dict[str, Any] = {"available": False, "message": EXPLORER_NO_KEY_MESSAGE}
    out.update(extra)
    return out
