"""Block lookups by tag, number and hash."""

from __future__ import annotations

from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import NotFoundError, UnknownOperationError
from .formatters import format_block, receipt_status
from .networks import BLOCKS_PER_BATCH
from .quantity import format_ether, hex_to_int

RESOURCE = "block"
OPERATIONS = {
    "getLatestBlock": "Latest block",
    "getBlock": "Block by number or tag",
    "getBlockByNumber": "Block by number or tag",
    "getBlockByHash": "Block by hash",
    "getFinalizedBlock": "Latest finalized block",
    "getSafeBlock": "Latest safe block",
    "getBlockTransactions": "Transactions included in a block",
    "getBlockReceipts": "Receipts of every transaction in a block",
    "subscribeToBlocks": "The latest N blocks",
    "getBatchInfo": "Estimated batch index of a block",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

MAX_BLOCK_COUNT = 100


def _fetch(client: ScrollClient, block_id: Any, full: bool) -> dict[str, Any]:
    block = client.get_block(block_id, full)
    if not block:
        raise NotFoundError(f"Block not found: {block_id}")
    return block


def _by_tag(tag: str):
    def handler(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
        full = p.get_bool(params, "include_transactions", False)
        return format_block(_fetch(client, tag, full), full_transactions=full)

    return handler


def _get_block(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    full = p.get_bool(params, "include_transactions", False)
    block_id = p.get_block_id(params, "block_number")
    return format_block(_fetch(client, block_id, full), full_transactions=full)


def _get_block_by_hash(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    full = p.get_bool(params, "include_transactions", False)
    block_hash = p.get_hash(params, "block_hash")
    return format_block(_fetch(client, block_hash, full), full_transactions=full)


def _block_identifier(params: dict[str, Any]) -> str:
    block_hash = p.get_str(params, "block_hash")
    if block_hash:
        return p.get_hash(params, "block_hash")
    return p.get_block_id(params, "block_identifier")


def _get_block_transactions(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    block = _fetch(client, _block_identifier(params), True)
    txs = [tx for tx in block.get("transactions") or [] if isinstance(tx, dict)]
    return {
        "block_number": hex_to_int(block.get("number")),
        "block_hash": block.get("hash"),
        "transaction_count": len(txs),
        "transactions": [
            {
                "hash": tx.get("hash"),
                "from": tx.get("from"),
                "to": tx.get("to"),
                "value": format_ether(hex_to_int(tx.get("value")) or 0),
                "gas_limit": str(hex_to_int(tx.get("gas")) or 0),
                "nonce": hex_to_int(tx.get("nonce")),
            }
            for tx in txs
        ],
    }


def _get_block_receipts(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    block = _fetch(client, _block_identifier(params), False)
    receipts = []
    for tx_hash in block.get("transactions") or []:
        receipt = client.get_transaction_receipt(tx_hash if isinstance(tx_hash, str) else tx_hash["hash"])
        if not receipt:
            continue
        receipts.append(
            {
                "transaction_hash": receipt.get("transactionHash"),
                "status": receipt_status(receipt),
                "gas_used": str(hex_to_int(receipt.get("gasUsed")) or 0),
                "cumulative_gas_used": str(hex_to_int(receipt.get("cumulativeGasUsed")) or 0),
                "contract_address": receipt.get("contractAddress"),
                "from": receipt.get("from"),
                "to": receipt.get("to"),
                "logs_count": len(receipt.get("logs") or []),
            }
        )
    return {
        "block_number": hex_to_int(block.get("number")),
        "block_hash": block.get("hash"),
        "receipts": receipts,
    }


def _subscribe_to_blocks(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    count = p.get_int(params, "block_count", 10, minimum=1)
    if count > MAX_BLOCK_COUNT:
        raise ValueError(f"block_count must be <= {MAX_BLOCK_COUNT}")
    latest = client.get_block_number()
    start = max(0, latest - count + 1)
    blocks = []
    for number in range(start, latest + 1):
        block = client.get_block(number)
        if block:
            blocks.append(format_block(block))
    return {"latest_block_number": latest, "block_count": len(blocks), "blocks": blocks}


def _get_batch_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    number = p.get_int(params, "block_number")
    if number is None:
        number = client.get_block_number()
    return {
        "block_number": number,
        "estimated_batch_index": number // BLOCKS_PER_BATCH,
        "message": "Batch information requires querying the L1 ScrollChain contract for accurate data",
    }


_HANDLERS = {
    "getLatestBlock": _by_tag("latest"),
    "getBlock": _get_block,
    "getBlockByNumber": _get_block,
    "getBlockByHash": _get_block_by_hash,
    "getFinalizedBlock": _by_tag("finalized"),
    "getSafeBlock": _by_tag("safe"),
    "getBlockTransactions": _get_block_transactions,
    "getBlockReceipts": _get_block_receipts,
    "subscribeToBlocks": _subscribe_to_blocks,
    "getBatchInfo": _get_batch_info,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
