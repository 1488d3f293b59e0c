"""Polling trigger: detect new chain activity since the last stored cursor.

``poll`` never mutates ``state`` unless the whole poll succeeds, so a failed
RPC call leaves the cursor where it was and the next poll retries the range.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

from . import params as p
from .abi_codec import decode_log, event_topic0
from .address_utils import addresses_equal, pad_address, to_checksum_address, topic_to_address
from .client import ScrollClient, create_scroll_client
from .config import resolve_credentials
from .contracts import EVENT_SIGNATURES, ZERO_ADDRESS, get_contract_address
from .envelope import build_error_payload, build_ok_payload, error_from_exception
from .error_map import ERR_UNKNOWN_EVENT, EXIT_INVALID, EXIT_OK, ScrollNodeError, UnknownEventError
from .formatters import format_block, iso_timestamp
from .quantity import format_ether, hex_to_int, parse_ether
from .rpc_contract import DEFAULT_TIMEOUT_SECONDS
from .tokens import get_canvas_config
from .trigger_state import JsonStateStore

logger = logging.getLogger(__name__)

EVENTS = {
    "newBlock": "Latest block once head advances by block_interval",
    "blockFinalized": "Latest finalized block once it advances by block_interval",
    "transactionConfirmed": "A watched transaction reaching the required confirmations",
    "tokenTransfer": "ERC-20 Transfer logs",
    "nftTransfer": "ERC-721 Transfer logs",
    "contractEvent": "Logs of one event signature on one contract",
    "addressActivity": "Nonce increase of a watched address",
    "largeTransaction": "Transactions at or above a minimum ETH value",
    "bridgeDeposit": "L2 ETH gateway deposit logs",
    "bridgeWithdrawal": "L2 ETH gateway withdrawal logs",
    "canvasBadgeMinted": "Canvas badge mints (Transfer from the zero address)",
}

LARGE_TX_MAX_BLOCKS = 5
TRANSFER_TOPIC = event_topic0(EVENT_SIGNATURES["Transfer"])
ZERO_TOPIC = "0x" + "0" * 64


def _block_summary(block: dict[str, Any]) -> dict[str, Any]:
    out = format_block(block)
    return {
        "block_number": out["number"],
        "block_hash": out["hash"],
        "timestamp": out["timestamp"],
        "timestamp_iso": out["timestamp_iso"],
        "transaction_count": out["transaction_count"],
        "gas_used": out["gas_used"],
        "gas_limit": out["gas_limit"],
    }


def _poll_head(client: ScrollClient, params: dict[str, Any], state: dict[str, Any], tag: str) -> list[dict[str, Any]]:
    interval = p.get_int(params, "block_interval", 1, minimum=1)
    block = client.get_block(tag)
    if not block:
        return []
    number = hex_to_int(block.get("number"))
    last = state.get("last_block")
    if last is None:
        state["last_block"] = number
        return []
    if number < last + interval:
        return []
    state["last_block"] = number
    item = _block_summary(block)
    if tag == "finalized":
        item["status"] = "finalized"
    return [item]


def _new_block(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    return _poll_head(client, params, state, "latest")


def _block_finalized(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    return _poll_head(client, params, state, "finalized")


def _transaction_confirmed(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    if state.get("triggered"):
        return []
    tx_hash = p.get_hash(params, "transaction_hash")
    required = p.get_int(params, "confirmations", 1)
    receipt = client.get_transaction_receipt(tx_hash)
    if not receipt:
        return []
    block_number = hex_to_int(receipt.get("blockNumber"))
    confirmations = client.get_block_number() - block_number + 1
    if confirmations < required:
        return []
    state["triggered"] = True
    return [
        {
            "transaction_hash": tx_hash,
            "block_number": block_number,
            "status": "success" if hex_to_int(receipt.get("status")) == 1 else "failed",
            "confirmations": confirmations,
            "gas_used": str(hex_to_int(receipt.get("gasUsed")) or 0),
        }
    ]


def _scan_logs(
    client: ScrollClient,
    state: dict[str, Any],
    *,
    address: str | list[str] | None,
    topics: list[Any],
) -> list[dict[str, Any]]:
    """Logs in ``last_block+1 .. head``; the first poll only sets the cursor."""
    head = client.get_block_number()
    last = state.get("last_block")
    if last is None:
        state["last_block"] = head
        return []
    if head <= last:
        return []
    log_filter: dict[str, Any] = {"fromBlock": hex(last + 1), "toBlock": hex(head), "topics": topics}
    if address:
        log_filter["address"] = address
    logs = client.get_logs(log_filter)
    logger.debug("scanned blocks %d..%d: %d logs", last + 1, head, len(logs))
    state["last_block"] = head
    return logs


def _log_meta(log: dict[str, Any]) -> dict[str, Any]:
    return {
        "block_number": hex_to_int(log.get("blockNumber")),
        "transaction_hash": log.get("transactionHash"),
        "log_index": hex_to_int(log.get("logIndex")),
    }


def _token_transfer(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    token = p.get_address(params, "token_address", required=False)
    filter_by = p.get_choice(params, "filter_by", ("none", "from", "to"), "none")
    topics: list[Any] = [TRANSFER_TOPIC]
    if filter_by == "from":
        topics.append(pad_address(p.get_address(params, "from_address")))
    elif filter_by == "to":
        topics.extend([None, pad_address(p.get_address(params, "to_address"))])
    out = []
    for log in _scan_logs(client, state, address=token, topics=topics):
        log_topics = log.get("topics") or []
        if len(log_topics) != 3:
            continue
        out.append(
            {
                "token_address": to_checksum_address(log["address"]),
                "from": topic_to_address(log_topics[1]),
                "to": topic_to_address(log_topics[2]),
                "value": str(hex_to_int(log.get("data") or "0x0") or 0),
                **_log_meta(log),
            }
        )
    return out


def _nft_transfer(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    nft = p.get_address(params, "nft_address", required=False)
    out = []
    for log in _scan_logs(client, state, address=nft, topics=[TRANSFER_TOPIC]):
        log_topics = log.get("topics") or []
        if len(log_topics) != 4:
            continue
        out.append(
            {
                "nft_address": to_checksum_address(log["address"]),
                "from": topic_to_address(log_topics[1]),
                "to": topic_to_address(log_topics[2]),
                "token_id": str(int(log_topics[3], 16)),
                **_log_meta(log),
            }
        )
    return out


def _is_declaration(signature: str) -> bool:
    """True for `Transfer(address indexed from, ...)` style declarations that carry indexed markers."""
    return "indexed" in signature.split("(", 1)[-1]


def _contract_event(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    contract = p.get_address(params, "contract_address")
    signature = p.get_str(params, "event_signature", required=True)
    topic0 = event_topic0(signature)
    out = []
    for log in _scan_logs(client, state, address=contract, topics=[topic0]):
        item: dict[str, Any] = {
            "contract_address": contract,
            "event_signature": signature,
            "topics": log.get("topics") or [],
            "data": log.get("data") or "0x",
            **_log_meta(log),
        }
        if _is_declaration(signature):
            try:
                item["decoded"] = decode_log(signature, item["topics"], item["data"])
            except ValueError as err:
                item["decode_error"] = str(err)
        out.append(item)
    return out


def _address_activity(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    address = p.get_address(params, "watch_address")
    nonce = client.get_transaction_count(address)
    last = state.get("last_nonce")
    state["last_nonce"] = nonce
    if last is None or nonce <= last:
        return []
    balance = client.get_balance(address)
    return [
        {
            "address": address,
            "nonce": nonce,
            "previous_nonce": last,
            "new_transactions": nonce - last,
            "balance": format_ether(balance),
            "balance_wei": str(balance),
        }
    ]


def _large_transaction(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    min_value = parse_ether(p.require(params, "min_value"))
    watch = p.get_address(params, "watch_address", required=False)
    head = client.get_block_number()
    last = state.get("last_block")
    if last is None:
        state["last_block"] = head
        return []
    end = min(head, last + LARGE_TX_MAX_BLOCKS)
    out = []
    for number in range(last + 1, end + 1):
        block = client.get_block(number, True) or {}
        timestamp = hex_to_int(block.get("timestamp"))
        for tx in block.get("transactions") or []:
            if not isinstance(tx, dict):
                continue
            value = hex_to_int(tx.get("value")) or 0
            if value < min_value:
                continue
            if watch and not (addresses_equal(tx.get("from"), watch) or addresses_equal(tx.get("to"), watch)):
                continue
            out.append(
                {
                    "transaction_hash": tx.get("hash"),
                    "from": tx.get("from"),
                    "to": tx.get("to"),
                    "value": format_ether(value),
                    "value_wei": str(value),
                    "block_number": number,
                    "timestamp_iso": iso_timestamp(timestamp),
                }
            )
    state["last_block"] = max(end, last)
    return out


def _gateway(client: ScrollClient) -> str | None:
    try:
        return get_contract_address(client.network.key, "l2_eth_gateway")
    except ValueError:
        return None


def _bridge_logs(client: ScrollClient, state: dict[str, Any], kind: str, names: list[str]) -> list[dict[str, Any]]:
    topic_names = {event_topic0(EVENT_SIGNATURES[name]): name for name in names}
    out = []
    for log in _scan_logs(client, state, address=_gateway(client), topics=[list(topic_names)]):
        log_topics = log.get("topics") or []
        item: dict[str, Any] = {
            "type": kind,
            "event": topic_names.get(str(log_topics[0]).lower()) if log_topics else None,
            "address": log.get("address"),
            "data": log.get("data") or "0x",
            **_log_meta(log),
        }
        if len(log_topics) >= 3:
            item["from"] = topic_to_address(log_topics[1])
            item["to"] = topic_to_address(log_topics[2])
        out.append(item)
    return out


def _bridge_deposit(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    return _bridge_logs(client, state, "bridgeDeposit", ["DepositETH", "FinalizeDepositETH"])


def _bridge_withdrawal(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    return _bridge_logs(client, state, "bridgeWithdrawal", ["WithdrawETH"])


def _canvas_badge_minted(client: ScrollClient, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    badge_contract = p.get_address(params, "badge_contract", required=False)
    if not badge_contract:
        configured = get_canvas_config(client.network.key)["badge_contract"]
        badge_contract = None if configured == ZERO_ADDRESS else configured
    recipient = p.get_address(params, "badge_recipient", required=False)
    topics: list[Any] = [TRANSFER_TOPIC, ZERO_TOPIC]
    if recipient:
        topics.append(pad_address(recipient))
    out = []
    for log in _scan_logs(client, state, address=badge_contract, topics=topics):
        log_topics = log.get("topics") or []
        if len(log_topics) < 4:
            continue
        out.append(
            {
                "type": "canvasBadgeMinted",
                "badge_contract": log.get("address"),
                "recipient": topic_to_address(log_topics[2]),
                "token_id": str(int(log_topics[3], 16)),
                **_log_meta(log),
            }
        )
    return out


_POLLERS: dict[str, Callable[[ScrollClient, dict[str, Any], dict[str, Any]], list[dict[str, Any]]]] = {
    "newBlock": _new_block,
    "blockFinalized": _block_finalized,
    "transactionConfirmed": _transaction_confirmed,
    "tokenTransfer": _token_transfer,
    "nftTransfer": _nft_transfer,
    "contractEvent": _contract_event,
    "addressActivity": _address_activity,
    "largeTransaction": _large_transaction,
    "bridgeDeposit": _bridge_deposit,
    "bridgeWithdrawal": _bridge_withdrawal,
    "canvasBadgeMinted": _canvas_badge_minted,
}


def poll(client: ScrollClient, event: str, params: dict[str, Any], state: dict[str, Any]) -> list[dict[str, Any]]:
    poller = _POLLERS.get(event)
    if poller is None:
        raise UnknownEventError(f"Unknown event: {event}")
    working = dict(state)
    items = poller(client, params, working)
    state.clear()
    state.update(working)
    if items:
        logger.info("%s emitted %d item(s)", event, len(items))
    return items


def run_trigger_poll(
    req: dict[str, Any],
    *,
    state_store: JsonStateStore | None = None,
    env: Mapping[str, str] | None = None,
    config_path: str | None = None,
    client_factory: Callable[..., ScrollClient] = create_scroll_client,
) -> tuple[int, dict[str, Any]]:
    """One poll cycle for a ``{"event", "params", "state_key"}`` request.

    The cursor is loaded from and saved back to ``state_store`` under
    ``state_key`` (default: the event name); without a store the request's
    own ``state`` object is used and returned in the result.
    """
    event = str(req.get("event", "")).strip() if isinstance(req, dict) else ""
    method = f"trigger.{event}"
    if event not in _POLLERS:
        return EXIT_INVALID, build_error_payload(
            method=method,
            status="error",
            code=ERR_UNKNOWN_EVENT,
            message=f"Unknown event: {event}",
            hint=f"available events: {', '.join(EVENTS)}",
        )
    params = req.get("params") or {}
    state_key = str(req.get("state_key") or event)
    start = time.perf_counter()
    try:
        if not isinstance(params, dict):
            raise ValueError("request.params must be an object")
        network_credentials, api_credentials = resolve_credentials(req.get("credentials"), env=env, config_path=config_path)
        client = client_factory(
            network_credentials,
            api_credentials,
            timeout_seconds=float(req.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
        )
        state = state_store.get(state_key) if state_store is not None else dict(req.get("state") or {})
        items = poll(client, event, params, state)
        if state_store is not None:
            state_store.put(state_key, state)
    except (ScrollNodeError, ValueError) as err:
        duration_ms = int((time.perf_counter() - start) * 1000)
        return error_from_exception(err, method=method, request=req, duration_ms=duration_ms)
    return EXIT_OK, build_ok_payload(
        method=method,
        result={"event": event, "count": len(items), "items": items, "state": state},
        request=req,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
