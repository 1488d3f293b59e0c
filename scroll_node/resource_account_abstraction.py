"""ERC-4337 (EntryPoint v0.6) smart account helpers and bundler calls."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from . import params as p
from .abi_codec import encode_function_call, parse_function_signature
from .address_utils import compute_create2_address
from .client import ScrollClient
from .contracts import ENTRY_POINT_ADDRESS, ENTRY_POINT_VERSION
from .error_map import NotFoundError, RpcCallError, UnknownOperationError
from .quantity import format_ether

logger = logging.getLogger(__name__)

RESOURCE = "accountAbstraction"
OPERATIONS = {
    "getSmartAccount": "Deployment, balance, EntryPoint deposit and nonce of a smart account",
    "deploySmartAccount": "Factory call data and initCode for a new smart account",
    "executeUserOperation": "Submit a signed UserOperation to a bundler",
    "getUserOperation": "UserOperation by hash from a bundler",
    "getUserOperationReceipt": "UserOperation receipt from a bundler",
    "estimateUserOpGas": "Call, verification and pre-verification gas",
    "getPaymasterInfo": "Paymaster deployment and EntryPoint deposit",
    "getEntryPoint": "EntryPoint address and version",
}
OPERATION_TIERS = {"executeUserOperation": "broadcast"}
SIGNER_OPERATIONS: set[str] = set()

VERIFICATION_GAS_LIMIT = 100_000
PRE_VERIFICATION_GAS = 21_000
USER_OP_FIELDS = (
    "sender",
    "nonce",
    "initCode",
    "callData",
    "callGasLimit",
    "verificationGasLimit",
    "preVerificationGas",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "paymasterAndData",
    "signature",
)
CREATE_ACCOUNT_SIGNATURE = "createAccount(address,uint256)"


def _bundler(client: ScrollClient, params: dict[str, Any]) -> ScrollClient:
    url = p.get_str(params, "bundler_url")
    if not url:
        return client
    return ScrollClient(
        dataclasses.replace(client.network, rpc_url=url),
        client.credentials,
        client.api,
        timeout_seconds=client.timeout_seconds,
        context=client.context,
        layer="bundler",
    )


def _entry_point(params: dict[str, Any]) -> str:
    return p.get_address(params, "entry_point", required=False) or ENTRY_POINT_ADDRESS


def _deposit(client: ScrollClient, entry_point: str, address: str) -> int:
    return int(client.read_contract(entry_point, "balanceOf(address) view returns (uint256)", [address]))


def _get_smart_account(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "smart_account_address")
    entry_point = _entry_point(params)
    code = client.get_code(address)
    balance = client.get_balance(address)
    deposit = _deposit(client, entry_point, address)
    nonce = int(
        client.read_contract(
            entry_point, "getNonce(address,uint192) view returns (uint256)", [address, p.get_int(params, "nonce_key", 0)]
        )
    )
    return {
        "address": address,
        "is_deployed": code != "0x",
        "code_size": (len(code) - 2) // 2,
        "balance": format_ether(balance),
        "balance_wei": str(balance),
        "entry_point": entry_point,
        "entry_point_deposit": str(deposit),
        "entry_point_deposit_eth": format_ether(deposit),
        "nonce": str(nonce),
    }


def _deploy_smart_account(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    factory = p.get_address(params, "account_factory")
    owner = p.get_address(params, "owner_address")
    salt = p.get_int(params, "salt", 0)
    call_data = encode_function_call(parse_function_signature(CREATE_ACCOUNT_SIGNATURE), [owner, salt])
    try:
        predicted = client.read_contract(factory, "getAddress(address,uint256) view returns (address)", [owner, salt])
    except (RpcCallError, ValueError) as err:
        logger.debug("factory %s has no getAddress(address,uint256): %s", factory, err)
        predicted = None
    init_code_hash = p.get_hex(params, "account_init_code_hash")
    if predicted is None and init_code_hash:
        predicted = compute_create2_address(factory, "0x" + format(salt, "064x"), init_code_hash)
    return {
        "account_factory": factory,
        "owner_address": owner,
        "salt": str(salt),
        "entry_point": _entry_point(params),
        "factory_call_data": call_data,
        "init_code": factory + call_data[2:],
        "predicted_address": predicted,
        "message": "Use init_code in the first UserOperation, or call the factory directly",
    }


def _execute_user_operation(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    user_op = p.get_json(params, "user_operation", required=True)
    if not isinstance(user_op, dict):
        raise ValueError("user_operation must be a JSON object")
    missing = [field for field in USER_OP_FIELDS if field not in user_op]
    if missing:
        raise ValueError(f"user_operation is missing fields: {', '.join(missing)}")
    entry_point = _entry_point(params)
    bundler = _bundler(client, params)
    user_op_hash = bundler.call("eth_sendUserOperation", [user_op, entry_point])
    logger.info("submitted user operation %s for %s", user_op_hash, user_op["sender"])
    return {"user_op_hash": user_op_hash, "sender": user_op["sender"], "entry_point": entry_point}


def _user_op_hash(params: dict[str, Any]) -> str:
    return p.get_hash(params, "user_op_hash")


def _get_user_operation(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    op_hash = _user_op_hash(params)
    found = _bundler(client, params).call("eth_getUserOperationByHash", [op_hash])
    if not found:
        raise NotFoundError(f"UserOperation not found: {op_hash}")
    return {"user_op_hash": op_hash, **found}


def _get_user_operation_receipt(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    op_hash = _user_op_hash(params)
    receipt = _bundler(client, params).call("eth_getUserOperationReceipt", [op_hash])
    if not receipt:
        return {"user_op_hash": op_hash, "status": "pending"}
    return {"user_op_hash": op_hash, "status": "success" if receipt.get("success") else "failed", "receipt": receipt}


def _estimate_user_op_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx: dict[str, Any] = {"data": p.get_hex(params, "call_data", "0x")}
    target = p.get_address(params, "target", required=False)
    if target:
        tx["to"] = target
    value = p.get_amount(params, "value", required=False)
    if value:
        tx["value"] = value
    sender = p.get_address(params, "smart_account_address", required=False)
    if sender:
        tx["from"] = sender
    call_gas = client.estimate_gas(tx)
    return {
        "call_gas_limit": str(call_gas),
        "verification_gas_limit": str(VERIFICATION_GAS_LIMIT),
        "pre_verification_gas": str(PRE_VERIFICATION_GAS),
        "total_gas": str(call_gas + VERIFICATION_GAS_LIMIT + PRE_VERIFICATION_GAS),
        "message": "Accurate estimates require eth_estimateUserOperationGas on a bundler",
    }


def _get_paymaster_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    paymaster = p.get_address(params, "paymaster_address")
    entry_point = _entry_point(params)
    code = client.get_code(paymaster)
    deposit = _deposit(client, entry_point, paymaster)
    return {
        "paymaster_address": paymaster,
        "is_deployed": code != "0x",
        "entry_point": entry_point,
        "deposit": str(deposit),
        "deposit_eth": format_ether(deposit),
    }


def _get_entry_point(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return {"entry_point": ENTRY_POINT_ADDRESS, "network": client.network.key, "version": ENTRY_POINT_VERSION}


_HANDLERS = {
    "getSmartAccount": _get_smart_account,
    "deploySmartAccount": _deploy_smart_account,
    "executeUserOperation": _execute_user_operation,
    "getUserOperation": _get_user_operation,
    "getUserOperationReceipt": _get_user_operation_receipt,
    "estimateUserOpGas": _estimate_user_op_gas,
    "getPaymasterInfo": _get_paymaster_info,
    "getEntryPoint": _get_entry_point,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
