"""L1 <-> L2 bridge fees, status tracking and ETH withdrawals."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .bridge_utils import calculate_bridge_fee, calculate_message_hash, estimate_bridge_time, validate_bridge_amount
from .client import ScrollClient
from .contracts import get_contract_address
from .error_map import HttpApiError, MissingCredentialsError, UnknownOperationError
from .formatters import receipt_status
from .gas_utils import estimate_bridge_gas
from .quantity import format_ether, hex_to_int

logger = logging.getLogger(__name__)

RESOURCE = "bridge"
OPERATIONS = {
    "getBridgeFee": "Estimated bridge fee for a deposit or withdrawal",
    "estimateBridgeTime": "Expected bridge latency for a direction",
    "getDepositStatus": "Status of an L1 -> L2 deposit",
    "getWithdrawalStatus": "Status of an L2 -> L1 withdrawal",
    "withdrawETH": "Withdraw ETH to L1 through the L2 gateway router",
    "getBridgeHistory": "Bridge transactions of an address",
    "getClaimableWithdrawals": "Withdrawals of an address ready to claim on L1",
    "computeMessageHash": "Cross-domain message hash of a relayMessage call",
}
OPERATION_TIERS = {"withdrawETH": "broadcast"}
SIGNER_OPERATIONS = set(OPERATION_TIERS)

DIRECTIONS = ("deposit", "withdrawal")
DIRECT_GAS = {"deposit": 150_000, "withdrawal": 200_000}
WITHDRAW_GAS_LIMIT = 200_000
DEFAULT_PAGE_SIZE = 20


def _bridge_data(response: Any) -> Any:
    """Unwrap the bridge API ``{errcode, errmsg, data}`` envelope."""
    if not isinstance(response, dict) or "errcode" not in response:
        return response
    if response.get("errcode") not in (0, None):
        raise HttpApiError(f"Bridge API error {response['errcode']}: {response.get('errmsg', '')}", response=response)
    return response.get("data")


def _bridge_get(client: ScrollClient, path: str, query: dict[str, Any]) -> Any:
    return _bridge_data(client.http_get_json(f"{client.bridge_api_url}{path}", query))


def _get_bridge_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    direction = p.get_choice(params, "direction", DIRECTIONS, "deposit")
    is_erc20 = p.get_address(params, "token_address", required=False) is not None
    gas_price = client.get_gas_price()
    gas_units = p.get_int(params, "gas_limit") or DIRECT_GAS[direction]
    fee = gas_units * gas_price
    buffered_gas = estimate_bridge_gas(direction, is_erc20=is_erc20)
    buffered = calculate_bridge_fee(buffered_gas, gas_price, direction)
    return {
        "direction": direction,
        "estimated_gas_units": str(gas_units),
        "gas_price": str(gas_price),
        "estimated_fee_wei": str(fee),
        "estimated_fee_eth": format_ether(fee),
        "recommended_gas_units": str(buffered_gas),
        "recommended_fee_wei": str(buffered),
        "recommended_fee_eth": format_ether(buffered),
    }


def _estimate_bridge_time(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    direction = p.get_choice(params, "direction", DIRECTIONS, "deposit")
    estimate = estimate_bridge_time(direction)
    return {
        "direction": direction,
        "estimated_time": f"{estimate['min_minutes']}-{estimate['max_minutes']} minutes",
        **estimate,
    }


def _api_status(client: ScrollClient, tx_hash: str) -> dict[str, Any] | None:
    try:
        data = _bridge_data(client.http_post_json(f"{client.bridge_api_url}/txsbyhashes", {"txs": [tx_hash]}))
    except HttpApiError as err:
        logger.info("bridge API lookup for %s failed, falling back to receipt: %s", tx_hash, err)
        return None
    results = data.get("results") if isinstance(data, dict) else data
    if isinstance(results, list) and results:
        return results[0]
    return None


def _status(client: ScrollClient, params: dict[str, Any], direction: str) -> dict[str, Any]:
    tx_hash = p.get_hash(params)
    out: dict[str, Any] = {"transaction_hash": tx_hash, "direction": direction}
    record = _api_status(client, tx_hash)
    if record is not None:
        out.update({"source": "bridge_api", "bridge_tx": record})
        if "tx_status" in record:
            out["status"] = record["tx_status"]
        return out

    source_client = client
    if direction == "deposit":
        try:
            source_client = client.l1_client()
        except MissingCredentialsError:
            logger.debug("no L1 RPC for deposit %s, checking L2", tx_hash)
    receipt = source_client.get_transaction_receipt(tx_hash)
    out["source"] = f"{source_client.layer}_receipt"
    if not receipt:
        out["status"] = "pending"
        return out
    ok = receipt_status(receipt) == "success"
    if direction == "deposit":
        out["status"] = "confirmed" if ok else "failed"
    else:
        out["status"] = "initiated" if ok else "failed"
        out["note"] = estimate_bridge_time("withdrawal")["description"]
    out["block_number"] = hex_to_int(receipt.get("blockNumber"))
    return out


def _get_deposit_status(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _status(client, params, "deposit")


def _get_withdrawal_status(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _status(client, params, "withdrawal")


def _withdraw_eth(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    amount = p.get_amount(params, "amount")
    check = validate_bridge_amount(amount)
    if not check["valid"]:
        raise ValueError(check["error"])
    router = get_contract_address(client.network.key, "l2_gateway_router")
    gas_limit = p.get_int(params, "gas_limit", WITHDRAW_GAS_LIMIT, minimum=1)
    sent = client.write_contract(
        router,
        "withdrawETH(uint256,uint256)",
        [amount, gas_limit],
        value=amount,
        wait=p.get_bool(params, "wait", True),
    )
    sent.update(
        {
            "amount": str(amount),
            "amount_eth": format_ether(amount),
            "gateway": router,
            "estimated_claim_time": estimate_bridge_time("withdrawal")["description"],
        }
    )
    return sent


def _get_bridge_history(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    data = _bridge_get(
        client,
        "/txs",
        {
            "address": address,
            "page": p.get_int(params, "page", 1, minimum=1),
            "page_size": p.get_int(params, "page_size", DEFAULT_PAGE_SIZE, minimum=1),
        },
    )
    results = data.get("results", []) if isinstance(data, dict) else data or []
    return {
        "address": address,
        "transactions": results,
        "total": data.get("total", len(results)) if isinstance(data, dict) else len(results),
    }


def _get_claimable_withdrawals(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    data = _bridge_get(
        client,
        "/l2/unclaimed/withdrawals",
        {
            "address": address,
            "page": p.get_int(params, "page", 1, minimum=1),
            "page_size": p.get_int(params, "page_size", DEFAULT_PAGE_SIZE, minimum=1),
        },
    )
    results = data.get("results", []) if isinstance(data, dict) else data or []
    return {"address": address, "withdrawals": results, "count": len(results)}


def _compute_message_hash(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    sender = p.get_address(params, "sender")
    target = p.get_address(params, "target")
    value = p.get_int(params, "value", 0)
    nonce = p.get_int(params, "message_nonce", required=True)
    message = p.get_hex(params, "message", "0x")
    return {
        "sender": sender,
        "target": target,
        "value": str(value),
        "message_nonce": nonce,
        "message_hash": calculate_message_hash(sender, target, value, nonce, message),
    }


_HANDLERS = {
    "getBridgeFee": _get_bridge_fee,
    "estimateBridgeTime": _estimate_bridge_time,
    "getDepositStatus": _get_deposit_status,
    "getWithdrawalStatus": _get_withdrawal_status,
    "withdrawETH": _withdraw_eth,
    "getBridgeHistory": _get_bridge_history,
    "getClaimableWithdrawals": _get_claimable_withdrawals,
    "computeMessageHash": _compute_message_hash,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
