"""Request/response contract helpers for node requests."""

from __future__ import annotations

import copy
import json
from argparse import Namespace
from typing import Any

DEFAULT_TIMEOUT_SECONDS = 20.0
REDACTED = "***"
SECRET_CREDENTIAL_KEYS = {"private_key", "privateKey"}


def parse_request_from_args(args: Namespace) -> dict[str, Any]:
    if args.request_file:
        with open(args.request_file, encoding="utf-8") as f:
            return json.load(f)
    if args.request_json:
        return json.loads(args.request_json)

    req: dict[str, Any] = {
        "resource": args.resource or "",
        "operation": args.operation or "",
        "params": json.loads(args.params_json) if args.params_json else {},
        "context": json.loads(args.context_json) if args.context_json else {},
        "timeout_seconds": args.timeout_seconds,
    }
    if args.credentials_json:
        req["credentials"] = json.loads(args.credentials_json)
    if getattr(args, "continue_on_fail", False):
        req["continue_on_fail"] = True
    return req


def validate_request(req: dict[str, Any]) -> tuple[bool, str]:
    if not isinstance(req, dict):
        return False, "request must be an object"

    for field in ("resource", "operation"):
        value = req.get(field)
        if not isinstance(value, str) or not value.strip():
            return False, f"request.{field} must be a non-empty string"

    params = req.get("params", {})
    if params is not None and not isinstance(params, dict):
        return False, "request.params must be an object"

    items = req.get("items")
    if items is not None:
        if not isinstance(items, list) or not items:
            return False, "request.items must be a non-empty array"
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                return False, f"request.items[{idx}] must be an object"

    timeout = req.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        return False, "request.timeout_seconds must be a positive number"

    context = req.get("context", {})
    if not isinstance(context, dict):
        return False, "request.context must be an object"

    credentials = req.get("credentials", {})
    if credentials is not None and not isinstance(credentials, dict):
        return False, "request.credentials must be an object"
    if isinstance(credentials, dict):
        network = credentials.get("network")
        if network is not None and not isinstance(network, (dict, str)):
            return False, "request.credentials.network must be a network name or an object"
        api = credentials.get("api")
        if api is not None and not isinstance(api, dict):
            return False, "request.credentials.api must be an object"

    if "continue_on_fail" in req and not isinstance(req["continue_on_fail"], bool):
        return False, "request.continue_on_fail must be a boolean"

    return True, ""


def normalized_context(raw_context: dict[str, Any] | None) -> dict[str, Any]:
    ctx = raw_context or {}
    return {
        "allow_local_sensitive": bool(ctx.get("allow_local_sensitive", False)),
        "allow_broadcast": bool(ctx.get("allow_broadcast", False)),
        "confirmation_token": str(ctx.get("confirmation_token", "")).strip(),
    }


def resolve_rpc_endpoints(rpc_url: str | None) -> list[str]:
    if not rpc_url:
        return []
    return [item.strip() for item in str(rpc_url).split(",") if item.strip()]


def sanitized_request(req: Any) -> Any:
    """Copy of the request that is safe to echo back or log."""
    if not isinstance(req, dict):
        return req
    out = copy.deepcopy(req)
    credentials = out.get("credentials")
    if isinstance(credentials, dict):
        for section in [credentials, credentials.get("network"), credentials.get("api")]:
            if not isinstance(section, dict):
                continue
            for key in list(section.keys()):
                if key in SECRET_CREDENTIAL_KEYS or key.endswith("api_key") or key.endswith("ApiKey"):
                    section[key] = REDACTED
    env = out.get("env")
    if isinstance(env, dict):
        out["env"] = {k: REDACTED for k in env}
    return out
