"""Standard JSON result envelope shared by the dispatcher, trigger and CLI."""

from __future__ import annotations

import datetime as dt
from typing import Any

from .error_map import ERR_INTERNAL, ERR_INVALID_REQUEST, EXIT_INVALID, ScrollNodeError
from .rpc_contract import sanitized_request


def timestamp_utc() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def base_response(method: str) -> dict[str, Any]:
    return {
        "timestamp_utc": timestamp_utc(),
        "method": method,
    }


def build_ok_payload(
    *,
    method: str,
    result: Any,
    request: dict[str, Any] | None = None,
    policy: dict[str, Any] | None = None,
    duration_ms: int | None = None,
) -> dict[str, Any]:
    payload = base_response(method)
    payload.update(
        {
            "status": "ok",
            "ok": True,
            "error_code": None,
            "error_message": None,
            "result": result,
        }
    )
    if policy is not None:
        payload["policy"] = policy
    if request is not None:
        payload["request"] = sanitized_request(request)
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    return payload


def build_error_payload(
    *,
    method: str,
    status: str,
    code: str,
    message: str,
    policy: dict[str, Any] | None = None,
    request: dict[str, Any] | None = None,
    rpc_request: dict[str, Any] | None = None,
    rpc_response: Any = None,
    duration_ms: int | None = None,
    hint: str | None = None,
    cause: Any = None,
) -> dict[str, Any]:
    payload = base_response(method)
    payload.update(
        {
            "status": status,
            "ok": False,
            "error_code": code,
            "error_message": message,
            "result": None,
        }
    )
    if policy is not None:
        payload["policy"] = policy
    if request is not None:
        payload["request"] = sanitized_request(request)
    if rpc_request is not None:
        payload["rpc_request"] = rpc_request
    if rpc_response is not None:
        payload["rpc_response"] = rpc_response
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    if hint:
        payload["hint"] = hint
    if cause is not None:
        payload["cause"] = cause
    return payload


def error_from_exception(
    err: Exception,
    *,
    method: str,
    request: dict[str, Any] | None = None,
    duration_ms: int | None = None,
) -> tuple[int, dict[str, Any]]:
    """Map a raised error onto (exit_code, envelope)."""
    if isinstance(err, ScrollNodeError):
        payload = build_error_payload(
            method=method,
            status=err.status,
            code=err.error_code,
            message=err.message,
            request=request,
            rpc_request=getattr(err, "rpc_request", None),
            rpc_response=getattr(err, "rpc_response", None) or getattr(err, "response", None),
            duration_ms=duration_ms,
            hint=err.hint,
        )
        return err.exit_code, payload
    if isinstance(err, ValueError):
        payload = build_error_payload(
            method=method,
            status="error",
            code=ERR_INVALID_REQUEST,
            message=str(err),
            request=request,
            duration_ms=duration_ms,
        )
        return EXIT_INVALID, payload
    payload = build_error_payload(
        method=method,
        status="error",
        code=ERR_INTERNAL,
        message=f"{type(err).__name__}: {err}",
        request=request,
        duration_ms=duration_ms,
    )
    return EXIT_INVALID, payload
