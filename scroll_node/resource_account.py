"""Account balances, nonces, code and explorer history."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import RpcCallError, UnknownOperationError
from .formatters import explorer_unavailable
from .quantity import format_ether, format_gwei, format_units
from .resource_token import balance_of, read_token_metadata

logger = logging.getLogger(__name__)

RESOURCE = "account"
OPERATIONS = {
    "getBalance": "ETH balance of an address at a block",
    "getTokenBalances": "Balances of several ERC-20 tokens for an address",
    "getTransactionCount": "Nonce of an address at a block",
    "getTransactionHistory": "Normal transactions from Scrollscan",
    "getInternalTransactions": "Internal transactions from Scrollscan",
    "getTokenTransfers": "ERC-20 transfers from Scrollscan",
    "getNFTHoldings": "ERC-721 transfers from Scrollscan",
    "getAccountInfo": "Balance, nonce and code of an address",
    "estimateGas": "Gas estimate and cost of a transaction",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()


def _get_balance(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    block = p.get_block_id(params)
    balance = client.get_balance(address, block)
    return {
        "address": address,
        "balance": format_ether(balance),
        "balance_wei": str(balance),
        "block_tag": block,
    }


def _get_token_balances(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    balances: list[dict[str, Any]] = []
    skipped: list[str] = []
    for raw in p.get_list(params, "token_addresses", required=True):
        try:
            token = p.get_address({"token": raw}, "token")
            meta = read_token_metadata(client, token)
            balance = balance_of(client, token, address)
        except (RpcCallError, ValueError) as err:
            logger.debug("skipping token %s: %s", raw, err)
            skipped.append(str(raw))
            continue
        balances.append(
            {
                "token_address": token,
                "name": meta["name"],
                "symbol": meta["symbol"],
                "decimals": meta["decimals"],
                "balance": str(balance),
                "balance_formatted": format_units(balance, meta["decimals"]),
            }
        )
    return {"address": address, "balances": balances, "skipped": skipped}


def _get_transaction_count(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    block = p.get_block_id(params)
    nonce = client.get_transaction_count(address, block)
    return {"address": address, "nonce": nonce, "transaction_count": nonce, "block_tag": block}


def _explorer_list(client: ScrollClient, params: dict[str, Any], action: str, key: str) -> dict[str, Any]:
    address = p.get_address(params, "address")
    query = {
        "module": "account",
        "action": action,
        "address": address,
        "startblock": p.get_int(params, "start_block", 0),
        "endblock": p.get_int(params, "end_block", 99999999),
        "page": p.get_int(params, "page", 1, minimum=1),
        "offset": p.get_int(params, "offset", 100, minimum=1),
        "sort": p.get_choice(params, "sort", ("asc", "desc"), "desc"),
    }
    rows = client.explorer_get(query)
    if rows is None:
        return explorer_unavailable(address=address, **{key: []})
    return {"address": address, key: rows, "count": len(rows)}


def _get_transaction_history(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _explorer_list(client, params, "txlist", "transactions")


def _get_internal_transactions(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _explorer_list(client, params, "txlistinternal", "internal_transactions")


def _get_token_transfers(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _explorer_list(client, params, "tokentx", "token_transfers")


def _get_nft_holdings(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _explorer_list(client, params, "tokennfttx", "nft_transfers")


def _get_account_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    balance = client.get_balance(address)
    nonce = client.get_transaction_count(address)
    code = client.get_code(address)
    return {
        "address": address,
        "balance": format_ether(balance),
        "balance_wei": str(balance),
        "nonce": nonce,
        "is_contract": code != "0x",
        "code_size": (len(code) - 2) // 2,
    }


def _estimate_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx: dict[str, Any] = {"to": p.get_address(params, "to")}
    sender = p.get_address(params, "from", required=False)
    if sender:
        tx["from"] = sender
    elif client.has_signer:
        tx["from"] = client.signer_address
    value = p.get_amount(params, "value", required=False)
    if value:
        tx["value"] = value
    data = p.get_hex(params, "data")
    if data:
        tx["data"] = data
    gas = client.estimate_gas(tx)
    gas_price = client.get_gas_price()
    cost = gas * gas_price
    return {
        "gas_limit": str(gas),
        "gas_price": str(gas_price),
        "gas_price_gwei": format_gwei(gas_price),
        "estimated_cost_wei": str(cost),
        "estimated_cost": format_ether(cost),
    }


_HANDLERS = {
    "getBalance": _get_balance,
    "getTokenBalances": _get_token_balances,
    "getTransactionCount": _get_transaction_count,
    "getTransactionHistory": _get_transaction_history,
    "getInternalTransactions": _get_internal_transactions,
    "getTokenTransfers": _get_token_transfers,
    "getNFTHoldings": _get_nft_holdings,
    "getAccountInfo": _get_account_info,
    "estimateGas": _estimate_gas,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
