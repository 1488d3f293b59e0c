"""HTTP JSON-RPC and REST transport with bounded retries."""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from socket import timeout as SocketTimeout
from typing import Any

from .error_map import ERR_RPC_TIMEOUT, ERR_RPC_TRANSPORT

logger = logging.getLogger(__name__)

RETRYABLE_HTTP_CODES = {429, 502, 503, 504}
DEFAULT_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def _sleep_backoff(attempt: int) -> None:
    backoffs = [0.15, 0.40]
    if attempt < len(backoffs):
        time.sleep(backoffs[attempt])


def _is_timeout(err: urllib.error.URLError) -> bool:
    return isinstance(err.reason, (SocketTimeout, TimeoutError))


def _failure(code: str, message: str, response: Any, *, key: str) -> dict[str, Any]:
    return {"ok": False, "error_code": code, "error_message": message, key: response}


def _perform(
    req: urllib.request.Request,
    *,
    timeout_seconds: float,
    retries: int,
    key: str,
    label: str,
) -> dict[str, Any]:
    last_error: dict[str, Any] | None = None

    for attempt in range(retries + 1):
        try:
            with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
                text = resp.read().decode("utf-8")
                try:
                    decoded = json.loads(text) if text.strip() else None
                except json.JSONDecodeError:
                    return _failure(ERR_RPC_TRANSPORT, f"{label} returned non-json response", {"raw": text}, key=key)
                return {"ok": True, "error_code": None, "error_message": None, key: decoded}
        except SocketTimeout as err:
            return _failure(ERR_RPC_TIMEOUT, str(err) or "timed out", None, key=key)
        except urllib.error.HTTPError as err:
            text = err.read().decode("utf-8", errors="replace")
            last_error = _failure(
                ERR_RPC_TRANSPORT,
                f"http error {err.code}",
                {"status": err.code, "raw": text},
                key=key,
            )
            if err.code in RETRYABLE_HTTP_CODES and attempt < retries:
                logger.debug("%s http %s, retry %d/%d", label, err.code, attempt + 1, retries)
                _sleep_backoff(attempt)
                continue
            return last_error
        except urllib.error.URLError as err:
            if _is_timeout(err):
                return _failure(ERR_RPC_TIMEOUT, str(err.reason), None, key=key)
            last_error = _failure(ERR_RPC_TRANSPORT, str(err), None, key=key)
            if attempt < retries:
                logger.debug("%s unreachable (%s), retry %d/%d", label, err.reason, attempt + 1, retries)
                _sleep_backoff(attempt)
                continue
            return last_error
        except (OSError, ValueError) as err:
            return _failure(ERR_RPC_TRANSPORT, str(err), None, key=key)

    return last_error or _failure(ERR_RPC_TRANSPORT, "unknown transport failure", None, key=key)


def invoke_rpc(
    *,
    rpc_url: str,
    payload: dict[str, Any],
    timeout_seconds: float,
    retries: int,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(rpc_url, data=body, method="POST", headers=DEFAULT_HEADERS)
    return _perform(req, timeout_seconds=timeout_seconds, retries=retries, key="rpc_response", label="rpc endpoint")


def invoke_rpc_endpoints(
    *,
    rpc_urls: list[str],
    payload: dict[str, Any],
    timeout_seconds: float,
    retries: int,
) -> tuple[dict[str, Any], str]:
    """Try endpoints in order; only transport and timeout failures fall through."""
    if not rpc_urls:
        return _failure(ERR_RPC_TRANSPORT, "no rpc endpoint configured", None, key="rpc_response"), ""

    transport: dict[str, Any] = {}
    used = rpc_urls[0]
    for idx, url in enumerate(rpc_urls):
        used = url
        transport = invoke_rpc(rpc_url=url, payload=payload, timeout_seconds=timeout_seconds, retries=retries)
        if transport["ok"]:
            return transport, url
        if transport["error_code"] not in {ERR_RPC_TRANSPORT, ERR_RPC_TIMEOUT}:
            return transport, url
        if idx + 1 < len(rpc_urls):
            logger.warning(
                "rpc endpoint %d/%d failed (%s), falling back",
                idx + 1,
                len(rpc_urls),
                transport["error_code"],
            )
    return transport, used


def http_request_json(
    *,
    url: str,
    method: str = "GET",
    body: Any = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 20.0,
    retries: int = 2,
) -> dict[str, Any]:
    verb = method.upper()
    data = None if body is None else json.dumps(body).encode("utf-8")
    merged = dict(DEFAULT_HEADERS)
    merged.update(headers or {})
    req = urllib.request.Request(url, data=data, method=verb, headers=merged)
    return _perform(req, timeout_seconds=timeout_seconds, retries=retries, key="response", label="http endpoint")


def build_url(base: str, query: dict[str, Any] | None = None) -> str:
    if not query:
        return base
    clean = {k: v for k, v in query.items() if v is not None}
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urllib.parse.urlencode(clean)}"
