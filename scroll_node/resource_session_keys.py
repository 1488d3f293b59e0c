"""Locally managed session keys with scoped permissions.

A session key is a fresh secp256k1 key stored in the session store together
with its expiry, allowed targets, allowed selectors and a per-call value cap.
``executeWithSession`` signs with the session key only when the call fits
those permissions.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from eth_account import Account

from . import params as p
from .address_utils import require_address
from .client import ScrollClient
from .error_map import PolicyDeniedError, UnknownOperationError
from .quantity import format_ether
from .session_store import SessionStore, is_session_active

logger = logging.getLogger(__name__)

RESOURCE = "sessionKeys"
OPERATIONS = {
    "createSessionKey": "Generate a session key with expiry and permissions",
    "getSessionKey": "Stored session key details (without the private key)",
    "revokeSessionKey": "Mark a session key as revoked",
    "getSessionPermissions": "Permissions attached to a session key",
    "executeWithSession": "Sign and send a permitted call with a session key",
    "getSessionTransactions": "Transactions sent with a session key",
}
OPERATION_TIERS = {
    "createSessionKey": "local-sensitive",
    "revokeSessionKey": "local-sensitive",
    "executeWithSession": "broadcast",
}
SIGNER_OPERATIONS: set[str] = set()

SELECTOR_LEN = 10


def _selector(value: Any) -> str:
    text = str(value).strip().lower()
    if len(text) != SELECTOR_LEN or not text.startswith("0x"):
        raise ValueError(f"invalid function selector: {value}")
    int(text[2:], 16)
    return text


def _public(record: dict[str, Any]) -> dict[str, Any]:
    out = {k: v for k, v in record.items() if k not in {"private_key", "transactions"}}
    out["is_active"] = is_session_active(record)
    out["expired"] = record.get("valid_until") is not None and time.time() >= int(record["valid_until"])
    return out


def _session_address(params: dict[str, Any]) -> str:
    return p.get_address(params, "session_key_address")


def _create_session_key(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    valid_until = p.get_int(params, "valid_until")
    valid_for = p.get_int(params, "valid_for_seconds")
    if valid_until is None and valid_for:
        valid_until = int(time.time()) + valid_for
    if valid_until is not None and valid_until <= time.time():
        raise ValueError("valid_until must be in the future")
    contracts = [require_address(c, field="allowed_contracts") for c in p.get_list(params, "allowed_contracts")]
    selectors = [_selector(s) for s in p.get_list(params, "allowed_selectors")]
    max_value = p.get_amount(params, "max_value", required=False)

    account = Account.create()
    record = {
        "address": account.address,
        "private_key": "0x" + bytes(account.key).hex(),
        "smart_account_address": p.get_address(params, "smart_account_address", required=False),
        "network": client.network.key,
        "created_at": int(time.time()),
        "valid_until": valid_until,
        "revoked": False,
        "permissions": {
            "allowed_contracts": contracts,
            "allowed_selectors": selectors,
            "max_value_wei": None if max_value is None else str(max_value),
        },
        "transactions": [],
    }
    store.add(record)
    logger.info("created session key %s", account.address)
    out = _public(record)
    out["session_key_private_key"] = record["private_key"]
    out["note"] = "Store the private key securely; it will not be shown again"
    return out


def _get_session_key(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    address = _session_address(params)
    out = _public(store.require(address))
    out["nonce"] = client.get_transaction_count(address)
    out["balance"] = format_ether(client.get_balance(address))
    return out


def _revoke_session_key(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    address = _session_address(params)
    record = store.update(address, revoked=True, revoked_at=int(time.time()))
    out = _public(record)
    out["note"] = "Revoked locally; also call removeSessionKey() on the smart account if it was registered"
    return out


def _get_session_permissions(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    record = store.require(_session_address(params))
    return {
        "session_key_address": record["address"],
        "is_active": is_session_active(record),
        "valid_until": record.get("valid_until"),
        **record.get("permissions", {}),
    }


def check_session_permission(record: dict[str, Any], target: str, data: str, value: int) -> None:
    """Raise PolicyDeniedError unless the call is within the session's permissions."""
    if not is_session_active(record):
        raise PolicyDeniedError(f"Session key {record['address']} is revoked or expired")
    perms = record.get("permissions") or {}
    contracts = [c.lower() for c in perms.get("allowed_contracts") or []]
    if contracts and target.lower() not in contracts:
        raise PolicyDeniedError(f"Target {target} is not allowed for this session key")
    selectors = perms.get("allowed_selectors") or []
    if selectors and data[:SELECTOR_LEN].lower() not in selectors:
        raise PolicyDeniedError(f"Function selector {data[:SELECTOR_LEN]} is not allowed for this session key")
    max_value = perms.get("max_value_wei")
    if max_value is not None and value > int(max_value):
        raise PolicyDeniedError(f"Value {value} exceeds the session limit of {max_value} wei")


def _execute_with_session(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    address = _session_address(params)
    record = store.require(address)
    target = p.get_address(params, "target_contract")
    data = p.get_hex(params, "call_data", "0x")
    value = p.get_amount(params, "value", required=False) or 0
    check_session_permission(record, target, data, value)

    account = Account.from_key(record["private_key"])
    tx: dict[str, Any] = {"to": target, "data": data, "value": value}
    gas_limit = p.get_int(params, "gas_limit")
    if gas_limit:
        tx["gas"] = gas_limit
    # The hash is recorded before the receipt wait, so a timeout keeps the session history.
    sent = client.send_transaction(tx, wait=False, account=account)
    store.append_transaction(
        address,
        {"hash": sent["hash"], "to": target, "selector": data[:SELECTOR_LEN], "value": str(value), "sent_at": int(time.time())},
    )
    sent["session_key_address"] = record["address"]
    if p.get_bool(params, "wait", True):
        client.settle_transaction(sent, timeout_seconds=p.get_float(params, "timeout", 120.0))
    return sent


def _get_session_transactions(client: ScrollClient, params: dict[str, Any], store: SessionStore) -> dict[str, Any]:
    record = store.require(_session_address(params))
    transactions = record.get("transactions") or []
    return {"session_key_address": record["address"], "transactions": transactions, "count": len(transactions)}


_HANDLERS = {
    "createSessionKey": _create_session_key,
    "getSessionKey": _get_session_key,
    "revokeSessionKey": _revoke_session_key,
    "getSessionPermissions": _get_session_permissions,
    "executeWithSession": _execute_with_session,
    "getSessionTransactions": _get_session_transactions,
}


def execute(
    client: ScrollClient,
    operation: str,
    params: dict[str, Any],
    *,
    store: SessionStore | None = None,
) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params, store or SessionStore())
