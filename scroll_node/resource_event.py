"""Log queries and event decoding."""

from __future__ import annotations

import re
from typing import Any

from . import params as p
from .abi_codec import decode_log, event_topic0, find_event, parse_abi, parse_event_declaration
from .client import ScrollClient
from .error_map import UnknownOperationError
from .formatters import format_log

RESOURCE = "event"
OPERATIONS = {
    "getLogs": "eth_getLogs with optional address and event signature",
    "getEventsByContract": "Logs emitted by one contract",
    "getEventsByTopic": "Logs matching a topic0 or event signature",
    "filterEvents": "Logs filtered by address and topic0..topic2",
    "getEventHistory": "All logs of an address over a block range",
    "subscribeToEvents": "Logs from the latest N blocks",
    "decodeEvent": "Decode a log with an ABI or event declaration",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

TOPIC_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def _topic(params: dict[str, Any], key: str) -> str | None:
    value = p.get_str(params, key)
    if not value:
        return None
    if not TOPIC_RE.fullmatch(value):
        raise ValueError(f"{key} must be a 32-byte 0x-prefixed topic")
    return value.lower()


def _signature_topic(params: dict[str, Any]) -> str | None:
    signature = p.get_str(params, "event_signature")
    return event_topic0(signature) if signature else None


def _range(params: dict[str, Any]) -> dict[str, str]:
    return {
        "fromBlock": p.get_block_id(params, "from_block", "earliest"),
        "toBlock": p.get_block_id(params, "to_block", "latest"),
    }


def _query(client: ScrollClient, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
    return [format_log(log) for log in client.get_logs(log_filter)]


def _get_logs(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    log_filter: dict[str, Any] = _range(params)
    address = p.get_address(params, "contract_address", required=False)
    if address:
        log_filter["address"] = address
    topic0 = _signature_topic(params)
    if topic0:
        log_filter["topics"] = [topic0]
    logs = _query(client, log_filter)
    return {"logs": logs, "count": len(logs), "from_block": log_filter["fromBlock"], "to_block": log_filter["toBlock"]}


def _get_events_by_contract(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "contract_address")
    log_filter: dict[str, Any] = {"address": address, **_range(params)}
    topic0 = _signature_topic(params)
    if topic0:
        log_filter["topics"] = [topic0]
    events = _query(client, log_filter)
    return {
        "contract_address": address,
        "event_signature": p.get_str(params, "event_signature"),
        "events": events,
        "count": len(events),
    }


def _get_events_by_topic(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    topic = _topic(params, "topic0") or _signature_topic(params)
    if not topic:
        raise ValueError("topic0 or event_signature is required")
    events = _query(client, {"topics": [topic], **_range(params)})
    return {"topic": topic, "events": events, "count": len(events)}


def build_topic_filter(topic0: str | None, topic1: str | None, topic2: str | None) -> list[str | None]:
    """Positional topics list; unset leading positions become null wildcards."""
    topics: list[str | None] = [topic0, topic1, topic2]
    while topics and topics[-1] is None:
        topics.pop()
    return topics


def _filter_events(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    log_filter: dict[str, Any] = _range(params)
    address = p.get_address(params, "contract_address", required=False)
    if address:
        log_filter["address"] = address
    topics = build_topic_filter(
        _topic(params, "topic0") or _signature_topic(params),
        _topic(params, "topic1"),
        _topic(params, "topic2"),
    )
    if topics:
        log_filter["topics"] = topics
    events = _query(client, log_filter)
    return {"events": events, "count": len(events), "filter": {"contract_address": address, "topics": topics}}


def _get_event_history(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    log_filter: dict[str, Any] = _range(params)
    address = p.get_address(params, "contract_address", required=False)
    if address:
        log_filter["address"] = address
    events = _query(client, log_filter)
    return {"events": events, "count": len(events), "from_block": log_filter["fromBlock"], "to_block": log_filter["toBlock"]}


def _subscribe_to_events(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    count = p.get_int(params, "block_count", 10, minimum=1)
    head = client.get_block_number()
    from_block = max(0, head - count)
    log_filter: dict[str, Any] = {"fromBlock": hex(from_block), "toBlock": hex(head)}
    address = p.get_address(params, "contract_address", required=False)
    if address:
        log_filter["address"] = address
    topic0 = _signature_topic(params)
    if topic0:
        log_filter["topics"] = [topic0]
    events = _query(client, log_filter)
    return {"events": events, "count": len(events), "from_block": from_block, "to_block": head}


def _decode_event(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    topics = p.get_json(params, "log_topics", required=True)
    if isinstance(topics, str):
        topics = p.get_list(params, "log_topics")
    data = p.get_hex(params, "log_data", "0x")
    declaration = p.get_str(params, "event_declaration")
    if declaration:
        return decode_log(parse_event_declaration(declaration), topics, data)
    abi = p.get_json(params, "abi", required=True)
    event_name = p.get_str(params, "event_name")
    if event_name:
        return decode_log(find_event(abi, event_name), topics, data)
    if not topics:
        raise ValueError("log_topics cannot be empty when decoding with an abi")
    events = [f for f in parse_abi(abi) if f.kind == "event" and f.topic0 == str(topics[0]).lower()]
    if not events:
        raise ValueError(f"no event in abi matches topic0 {topics[0]}")
    return decode_log(events[0], topics, data)


_HANDLERS = {
    "getLogs": _get_logs,
    "getEventsByContract": _get_events_by_contract,
    "getEventsByTopic": _get_events_by_topic,
    "filterEvents": _filter_events,
    "getEventHistory": _get_event_history,
    "subscribeToEvents": _subscribe_to_events,
    "decodeEvent": _decode_event,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
