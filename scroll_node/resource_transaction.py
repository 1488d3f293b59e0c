"""Transaction lookup, sending, replacement and decoding."""

from __future__ import annotations

from typing import Any

from . import params as p
from .abi_codec import decode_calldata
from .address_utils import to_checksum_address
from .client import ScrollClient
from .error_map import NotFoundError, UnknownOperationError
from .formatters import format_receipt, format_transaction, receipt_status
from .networks import DEFAULT_GAS_LIMITS
from .quantity import format_ether, format_gwei, hex_to_int

RESOURCE = "transaction"
OPERATIONS = {
    "getTransaction": "Transaction by hash",
    "getTransactionReceipt": "Receipt by transaction hash",
    "getTransactionStatus": "not_found, pending, success or failed with confirmations",
    "sendETH": "Send ETH from the configured signer",
    "sendTransaction": "Send an arbitrary transaction",
    "signTransaction": "Sign a transaction without broadcasting it",
    "waitForTransaction": "Wait for a transaction to reach N confirmations",
    "estimateGas": "Estimate gas for a transaction",
    "getGasPrice": "Current gas price and EIP-1559 fee data",
    "getMaxPriorityFee": "Suggested max priority fee",
    "cancelTransaction": "Replace a pending transaction with a 0 ETH self-send",
    "speedUpTransaction": "Re-send a pending transaction with bumped fees",
    "getPendingTransactions": "Count of pending transactions for an address",
    "getTransactionProof": "Receipt and block data for a transaction",
    "decodeTransaction": "Decode transaction input with an ABI or signature",
}
OPERATION_TIERS = {
    "sendETH": "broadcast",
    "sendTransaction": "broadcast",
    "signTransaction": "local-sensitive",
    "cancelTransaction": "broadcast",
    "speedUpTransaction": "broadcast",
}
SIGNER_OPERATIONS = set(OPERATION_TIERS)

CANCEL_FEE_BUMP_PERCENT = 100
DEFAULT_SPEED_UP_PERCENT = 10


def _require_tx(client: ScrollClient, tx_hash: str) -> dict[str, Any]:
    tx = client.get_transaction(tx_hash)
    if not tx:
        raise NotFoundError(f"Transaction not found: {tx_hash}")
    return tx


def _get_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return format_transaction(_require_tx(client, p.get_hash(params)))


def _get_transaction_receipt(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    receipt = client.get_transaction_receipt(tx_hash)
    if not receipt:
        raise NotFoundError(f"Receipt not found (transaction pending or unknown): {tx_hash}")
    return format_receipt(receipt)


def _get_transaction_status(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    tx = client.get_transaction(tx_hash)
    if not tx:
        return {"hash": tx_hash, "status": "not_found", "confirmations": 0}
    receipt = client.get_transaction_receipt(tx_hash)
    if not receipt or not receipt.get("blockNumber"):
        return {"hash": tx_hash, "status": "pending", "confirmations": 0}
    block_number = hex_to_int(receipt["blockNumber"])
    head = client.get_block_number()
    return {
        "hash": tx_hash,
        "status": receipt_status(receipt),
        "block_number": block_number,
        "confirmations": max(head - block_number + 1, 0),
        "gas_used": str(hex_to_int(receipt.get("gasUsed")) or 0),
    }


def _tx_from_params(params: dict[str, Any], *, require_to: bool = True) -> dict[str, Any]:
    tx: dict[str, Any] = {}
    to = p.get_address(params, "to", required=require_to)
    if to:
        tx["to"] = to
    value = p.get_amount(params, "value", required=False)
    if value:
        tx["value"] = value
    data = p.get_hex(params, "data")
    if data:
        tx["data"] = data
    gas_limit = p.get_int(params, "gas_limit")
    if gas_limit:
        tx["gas"] = gas_limit
    nonce = p.get_int(params, "nonce")
    if nonce is not None:
        tx["nonce"] = nonce
    return tx


def _send_eth(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    to = p.get_address(params, "to")
    amount = p.get_amount(params, "amount")
    if amount <= 0:
        raise ValueError("amount must be greater than 0")
    sent = client.send_transaction(
        {"to": to, "value": amount, "gas": DEFAULT_GAS_LIMITS["transfer"]},
        wait=p.get_bool(params, "wait", True),
    )
    sent["value_eth"] = format_ether(amount)
    return sent


def _send_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx = _tx_from_params(params, require_to=False)
    if "to" not in tx and "data" not in tx:
        raise ValueError("to or data is required")
    return client.send_transaction(tx, wait=p.get_bool(params, "wait", True))


def _sign_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx = _tx_from_params(params)
    if "data" not in tx and "gas" not in tx:
        tx["gas"] = DEFAULT_GAS_LIMITS["transfer"]
    signed = client.sign_transaction(tx)
    populated = signed["transaction"]
    return {
        "signed_transaction": signed["raw_transaction"],
        "hash": signed["hash"],
        "from": signed["from"],
        "to": populated.get("to"),
        "nonce": populated["nonce"],
        "gas_limit": str(populated["gas"]),
        "value": str(populated["value"]),
        "chain_id": populated["chainId"],
    }


def _wait_for_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    receipt = client.wait_for_transaction(
        tx_hash,
        confirmations=p.get_int(params, "confirmations", 1, minimum=1),
        timeout_seconds=p.get_float(params, "timeout", 120.0),
    )
    return format_receipt(receipt, include_logs=False)


def _estimate_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx = _tx_from_params(params, require_to=False)
    sender = p.get_address(params, "from", required=False)
    if sender:
        tx["from"] = sender
    elif client.has_signer:
        tx["from"] = client.signer_address
    gas = client.estimate_gas(tx)
    gas_price = client.get_gas_price()
    return {
        "gas_limit": str(gas),
        "gas_price": str(gas_price),
        "estimated_cost_wei": str(gas * gas_price),
        "estimated_cost": format_ether(gas * gas_price),
    }


def _get_gas_price(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fees = client.get_fee_data()
    out: dict[str, Any] = {}
    for key, value in fees.items():
        out[key] = None if value is None else str(value)
        out[f"{key}_gwei"] = None if value is None else format_gwei(value)
    return out


def _get_max_priority_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fee = client.get_max_priority_fee()
    return {"max_priority_fee_per_gas": str(fee), "max_priority_fee_per_gas_gwei": format_gwei(fee)}


def _bump(value: int, percent: int) -> int:
    return value * (100 + percent) // 100


def _replacement_fees(tx: dict[str, Any], percent: int) -> dict[str, int]:
    if tx.get("maxFeePerGas"):
        return {
            "maxFeePerGas": _bump(hex_to_int(tx["maxFeePerGas"]), percent),
            "maxPriorityFeePerGas": _bump(hex_to_int(tx.get("maxPriorityFeePerGas")) or 0, percent),
        }
    return {"gasPrice": _bump(hex_to_int(tx.get("gasPrice")) or 0, percent)}


def _pending_own_tx(client: ScrollClient, tx_hash: str) -> dict[str, Any]:
    tx = _require_tx(client, tx_hash)
    if tx.get("blockNumber"):
        raise ValueError(f"Transaction {tx_hash} is already mined and cannot be replaced")
    if str(tx.get("from", "")).lower() != client.signer_address.lower():
        raise ValueError("Transaction was not sent by the configured signer")
    return tx


def _cancel_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    original = _pending_own_tx(client, tx_hash)
    replacement = {
        "to": client.signer_address,
        "value": 0,
        "data": "0x",
        "gas": DEFAULT_GAS_LIMITS["transfer"],
        "nonce": hex_to_int(original["nonce"]),
        **_replacement_fees(original, CANCEL_FEE_BUMP_PERCENT),
    }
    sent = client.send_transaction(replacement, wait=p.get_bool(params, "wait", False))
    sent["cancelled_hash"] = tx_hash
    return sent


def _speed_up_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    percent = p.get_int(params, "gas_increase", DEFAULT_SPEED_UP_PERCENT, minimum=1)
    original = _pending_own_tx(client, tx_hash)
    replacement: dict[str, Any] = {
        "value": hex_to_int(original.get("value")) or 0,
        "data": original.get("input") or "0x",
        "gas": hex_to_int(original.get("gas")),
        "nonce": hex_to_int(original["nonce"]),
        **_replacement_fees(original, percent),
    }
    if original.get("to"):
        replacement["to"] = to_checksum_address(original["to"])
    sent = client.send_transaction(replacement, wait=p.get_bool(params, "wait", False))
    sent["replaced_hash"] = tx_hash
    sent["gas_increase_percent"] = percent
    return sent


def _get_pending_transactions(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address", required=False) or client.signer_address
    pending = client.get_transaction_count(address, "pending")
    latest = client.get_transaction_count(address, "latest")
    return {
        "address": address,
        "pending_count": max(pending - latest, 0),
        "pending_nonce": pending,
        "latest_nonce": latest,
    }


def _get_transaction_proof(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    receipt = client.get_transaction_receipt(tx_hash)
    if not receipt:
        raise NotFoundError(f"Receipt not found (transaction pending or unknown): {tx_hash}")
    block = client.get_block(hex_to_int(receipt["blockNumber"])) or {}
    return {
        "transaction_hash": tx_hash,
        "block_number": hex_to_int(receipt["blockNumber"]),
        "block_hash": receipt.get("blockHash"),
        "transaction_index": hex_to_int(receipt.get("transactionIndex")),
        "status": receipt_status(receipt),
        "state_root": block.get("stateRoot"),
        "transactions_root": block.get("transactionsRoot"),
        "receipts_root": block.get("receiptsRoot"),
        "note": "Scroll proves execution per batch; use batch.getBatchStatus for the zk proof state.",
    }


def _decode_transaction(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    data = p.get_hex(params, "data")
    tx_hash = None
    if data is None:
        tx_hash = p.get_hash(params)
        data = _require_tx(client, tx_hash).get("input") or "0x"
    out: dict[str, Any] = {
        "hash": tx_hash,
        "data": data,
        "selector": data[:10] if len(data) >= 10 else None,
    }
    abi = p.get_json(params, "abi") or p.get_str(params, "function_signature")
    if abi and out["selector"]:
        out["decoded"] = decode_calldata(abi, data)
    return out


_HANDLERS = {
    "getTransaction": _get_transaction,
    "getTransactionReceipt": _get_transaction_receipt,
    "getTransactionStatus": _get_transaction_status,
    "sendETH": _send_eth,
    "sendTransaction": _send_transaction,
    "signTransaction": _sign_transaction,
    "waitForTransaction": _wait_for_transaction,
    "estimateGas": _estimate_gas,
    "getGasPrice": _get_gas_price,
    "getMaxPriorityFee": _get_max_priority_fee,
    "cancelTransaction": _cancel_transaction,
    "speedUpTransaction": _speed_up_transaction,
    "getPendingTransactions": _get_pending_transactions,
    "getTransactionProof": _get_transaction_proof,
    "decodeTransaction": _decode_transaction,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
