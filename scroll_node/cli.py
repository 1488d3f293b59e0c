"""Agent-facing JSON command line for Scroll L2 resources and polling triggers."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from typing import Any

from . import __version__
from .abi_codec import run_abi_operation
from .dispatcher import list_operations, run_node_request
from .envelope import base_response, build_error_payload, build_ok_payload
from .error_map import (
    ERR_ABI_DECODE_FAILED,
    ERR_ABI_ENCODE_FAILED,
    ERR_INVALID_REQUEST,
    EXIT_INVALID,
    EXIT_OK,
)
from .networks import NETWORKS
from .rpc_contract import DEFAULT_TIMEOUT_SECONDS, parse_request_from_args, sanitized_request
from .trigger import EVENTS, run_trigger_poll
from .trigger_state import JsonStateStore

logger = logging.getLogger("scroll_node")

LOG_LEVEL_ENV_VAR = "SCROLL_NODE_LOG_LEVEL"
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_STATE_FILE = "~/.scroll-node/trigger-state.json"


def _json_dump(payload: Any, pretty: bool = True) -> str:
    return json.dumps(payload, indent=2 if pretty else None, sort_keys=False)


def _print_selected_value(value: Any, *, compact: bool) -> None:
    if isinstance(value, (dict, list)):
        print(_json_dump(value, pretty=not compact))
        return
    if value is None:
        print("null")
        return
    if isinstance(value, bool):
        print("true" if value else "false")
        return
    print(str(value))


def _parse_path_segments(path: str) -> tuple[bool, list[tuple[str, Any]], str]:
    if not isinstance(path, str) or not path.startswith("$"):
        return False, [], "path must start with '$'"

    i = 1
    segments: list[tuple[str, Any]] = []
    while i < len(path):
        ch = path[i]
        if ch == ".":
            i += 1
            start = i
            while i < len(path) and path[i] not in ".[":
                i += 1
            key = path[start:i]
            if not key:
                return False, [], "invalid path: empty key segment"
            segments.append(("key", key))
            continue
        if ch == "[":
            i += 1
            start = i
            while i < len(path) and path[i].isdigit():
                i += 1
            if start == i or i >= len(path) or path[i] != "]":
                return False, [], "invalid path: list index must be numeric and closed with ']'"
            segments.append(("idx", int(path[start:i], 10)))
            i += 1
            continue
        return False, [], f"invalid path syntax at position {i}"
    return True, segments, ""


def select_jsonpath(value: Any, path: str) -> tuple[bool, Any, str]:
    """Resolve a ``$.key[0].other`` path against a JSON value."""
    ok, segments, err = _parse_path_segments(path)
    if not ok:
        return False, None, err
    current = value
    for kind, token in segments:
        if kind == "key":
            if not isinstance(current, dict):
                return False, None, f"cannot select key '{token}' from non-object"
            if token not in current:
                return False, None, f"key '{token}' not found"
            current = current[token]
        else:
            if not isinstance(current, list):
                return False, None, f"cannot select index [{token}] from non-array"
            if token >= len(current):
                return False, None, f"index [{token}] out of range"
            current = current[token]
    return True, current, ""


def _render(args: argparse.Namespace, payload: dict[str, Any], exit_code: int) -> int:
    if args.select:
        ok, selected, select_err = select_jsonpath(payload, args.select)
        if not ok:
            error_payload = build_error_payload(
                method=str(payload.get("method", "")),
                status="error",
                code=ERR_INVALID_REQUEST,
                message=f"invalid --select path: {select_err}",
            )
            print(_json_dump(error_payload, pretty=not args.compact))
            return EXIT_INVALID
        _print_selected_value(selected, compact=args.compact)
        return int(exit_code)

    if args.result_only and payload.get("ok"):
        _print_selected_value(payload.get("result"), compact=args.compact)
        return int(exit_code)

    print(_json_dump(payload, pretty=not args.compact))
    return int(exit_code)


def _invalid(args: argparse.Namespace, method: str, message: str) -> int:
    payload = build_error_payload(method=method, status="error", code=ERR_INVALID_REQUEST, message=message)
    print(_json_dump(payload, pretty=not args.compact))
    return EXIT_INVALID


def _load_json_request(args: argparse.Namespace) -> dict[str, Any] | None:
    if args.request_file:
        with open(args.request_file, encoding="utf-8") as f:
            return json.load(f)
    if args.request_json:
        return json.loads(args.request_json)
    return None


def cmd_execute(args: argparse.Namespace) -> int:
    try:
        req = parse_request_from_args(args)
    except (OSError, ValueError) as err:
        return _invalid(args, f"{args.resource or ''}.{args.operation or ''}", str(err))

    exit_code, payload = run_node_request(req, config_path=args.config, session_store=args.session_store)
    return _render(args, payload, exit_code)


def _poll_request(args: argparse.Namespace) -> dict[str, Any]:
    req = _load_json_request(args)
    if req is None:
        req = {
            "event": args.event or "",
            "params": json.loads(args.params_json) if args.params_json else {},
            "timeout_seconds": args.timeout_seconds,
        }
        if args.credentials_json:
            req["credentials"] = json.loads(args.credentials_json)
    if args.state_key:
        req["state_key"] = args.state_key
    return req


def cmd_poll(args: argparse.Namespace) -> int:
    try:
        req = _poll_request(args)
    except (OSError, ValueError) as err:
        return _invalid(args, f"trigger.{args.event or ''}", str(err))

    store = JsonStateStore(args.state_file)
    polls = 0
    exit_code = EXIT_OK
    try:
        while True:
            exit_code, payload = run_trigger_poll(req, state_store=store, config_path=args.config)
            exit_code = _render(args, payload, exit_code)
            polls += 1
            if not args.watch or (args.max_polls and polls >= args.max_polls):
                return exit_code
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("stopped after %d poll(s)", polls)
        return exit_code


def cmd_operations(args: argparse.Namespace) -> int:
    result = {"resources": list_operations(), "trigger_events": dict(EVENTS)}
    return _render(args, build_ok_payload(method="operations", result=result), EXIT_OK)


def cmd_networks(args: argparse.Namespace) -> int:
    result = {key: network.to_dict() for key, network in NETWORKS.items()}
    return _render(args, build_ok_payload(method="networks", result=result), EXIT_OK)


def cmd_abi(args: argparse.Namespace) -> int:
    try:
        abi_req = _load_json_request(args)
    except (OSError, ValueError) as err:
        return _invalid(args, "abi", str(err))
    if abi_req is None:
        return _invalid(args, "abi", "abi requires --request-json or --request-file")

    ok, result, err = run_abi_operation(abi_req)
    if not ok:
        operation = str(abi_req.get("operation", "")).strip().lower() if isinstance(abi_req, dict) else ""
        if operation in {"encode_call", "encode_args", "function_selector", "event_topic0"}:
            code = ERR_ABI_ENCODE_FAILED
        elif operation in {"decode_output", "decode_log", "decode_calldata"}:
            code = ERR_ABI_DECODE_FAILED
        else:
            code = ERR_INVALID_REQUEST
        payload = build_error_payload(method="abi", status="error", code=code, message=err)
        if isinstance(abi_req, dict):
            payload["request"] = sanitized_request(abi_req)
        return _render(args, payload, EXIT_INVALID)

    payload = base_response("abi")
    payload.update(
        {
            "status": "ok",
            "ok": True,
            "error_code": None,
            "error_message": None,
            "request": sanitized_request(abi_req),
            "result": result,
        }
    )
    return _render(args, payload, EXIT_OK)


def _add_output_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--compact", action="store_true", help="compact JSON output")
    parser.add_argument("--result-only", action="store_true", help="print only result field")
    parser.add_argument("--select", help="jsonpath-lite selector (supports $, .key, [index])")


def _add_request_args(parser: argparse.ArgumentParser, *, label: str) -> None:
    parser.add_argument("--request-file", help=f"{label} request JSON file")
    parser.add_argument("--request-json", help=f"{label} request JSON string")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scroll-node", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING"),
        help=f"stderr log level (default WARNING, env {LOG_LEVEL_ENV_VAR})",
    )
    parser.add_argument("--config", help="YAML credentials file (env SCROLL_NODE_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    exec_parser = sub.add_parser("execute", help="Run one resource operation through the policy wrapper")
    _add_request_args(exec_parser, label="node")
    exec_parser.add_argument("--resource", help="resource name (if not using request JSON)")
    exec_parser.add_argument("--operation", help="operation name (if not using request JSON)")
    exec_parser.add_argument("--params-json", help="params object as JSON")
    exec_parser.add_argument("--context-json", help="policy context object as JSON")
    exec_parser.add_argument("--credentials-json", help="credentials object as JSON")
    exec_parser.add_argument("--timeout-seconds", type=float, default=DEFAULT_TIMEOUT_SECONDS)
    exec_parser.add_argument("--continue-on-fail", action="store_true", help="report failing items inline")
    exec_parser.add_argument("--session-store", help="session key store path (env SCROLL_NODE_SESSION_STORE)")
    _add_output_args(exec_parser)
    exec_parser.set_defaults(func=cmd_execute)

    poll_parser = sub.add_parser("poll", help="Poll a trigger event once or continuously")
    _add_request_args(poll_parser, label="trigger")
    poll_parser.add_argument("--event", choices=sorted(EVENTS), help="trigger event (if not using request JSON)")
    poll_parser.add_argument("--params-json", help="trigger params object as JSON")
    poll_parser.add_argument("--credentials-json", help="credentials object as JSON")
    poll_parser.add_argument("--timeout-seconds", type=float, default=DEFAULT_TIMEOUT_SECONDS)
    poll_parser.add_argument("--state-file", default=DEFAULT_STATE_FILE, help="JSON file holding trigger cursors")
    poll_parser.add_argument("--state-key", help="cursor key inside the state file (default: event name)")
    poll_parser.add_argument("--watch", action="store_true", help="keep polling until interrupted")
    poll_parser.add_argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL_SECONDS)
    poll_parser.add_argument("--max-polls", type=int, help="stop --watch after N polls")
    _add_output_args(poll_parser)
    poll_parser.set_defaults(func=cmd_poll)

    ops_parser = sub.add_parser("operations", help="List resources, operations and trigger events")
    _add_output_args(ops_parser)
    ops_parser.set_defaults(func=cmd_operations)

    networks_parser = sub.add_parser("networks", help="Print the static network table")
    _add_output_args(networks_parser)
    networks_parser.set_defaults(func=cmd_networks)

    abi_parser = sub.add_parser("abi", help="Offline ABI encode/decode helpers")
    _add_request_args(abi_parser, label="abi")
    _add_output_args(abi_parser)
    abi_parser.set_defaults(func=cmd_abi)

    return parser


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("scroll_node")
    root.handlers[:] = [handler]
    root.setLevel(str(level).upper())
    root.propagate = False


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(args.log_level)
    except ValueError:
        parser.error(f"invalid --log-level: {args.log_level}")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
