from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from dataclasses import replace
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

from scroll_node.client import ScrollClient
from scroll_node.config import ApiCredentials, NetworkCredentials
from scroll_node.networks import NETWORKS

ROOT = Path(__file__).resolve().parents[1]

# Anvil/hardhat default development account #0; public test key.
DEV_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"
TX_HASH = "0x" + "ab" * 32
BLOCK_HASH = "0x" + "cd" * 32


class RpcError:
    """Route value that makes the fake node answer with a JSON-RPC error object."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message


class _RPCHandler(BaseHTTPRequestHandler):
    responses: list[Any] = []
    routes: dict[str, Any] = {}
    http_routes: dict[str, Any] = {}
    calls: list[dict[str, Any]] = []

    def _send(self, status_code: int, payload: Any) -> None:
        encoded = json.dumps(payload).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _http_route(self, method: str, body: Any) -> None:
        parsed = urlparse(self.path)
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        _RPCHandler.calls.append({"http": method, "path": parsed.path, "query": query, "body": body})
        route = _RPCHandler.http_routes.get(parsed.path)
        if route is None:
            self._send(404, {"error": f"no route for {parsed.path}"})
            return
        if callable(route):
            route = route(query if method == "GET" else body)
        if isinstance(route, tuple):
            self._send(int(route[0]), route[1])
            return
        self._send(200, route)

    def do_GET(self) -> None:  # noqa: N802
        self._http_route("GET", None)

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length).decode("utf-8")
        try:
            payload = json.loads(body)
        except ValueError:
            payload = {"raw": body}

        if not isinstance(payload, dict) or "jsonrpc" not in payload:
            self._http_route("POST", payload)
            return

        _RPCHandler.calls.append(payload)
        method = payload.get("method")
        if method in _RPCHandler.routes:
            result = _RPCHandler.routes[method]
            if callable(result):
                result = result(payload.get("params") or [])
            if isinstance(result, RpcError):
                response = {
                    "jsonrpc": "2.0",
                    "id": payload.get("id", 1),
                    "error": {"code": result.code, "message": result.message},
                }
            else:
                response = {"jsonrpc": "2.0", "id": payload.get("id", 1), "result": result}
            self._send(200, response)
            return

        status_code = 200
        if _RPCHandler.responses:
            next_response = _RPCHandler.responses.pop(0)
            if isinstance(next_response, tuple) and len(next_response) == 2:
                status_code = int(next_response[0])
                response_payload = next_response[1]
            else:
                response_payload = next_response
        else:
            response_payload = {"jsonrpc": "2.0", "id": payload.get("id", 1), "result": "0x1"}
        self._send(status_code, response_payload)

    def log_message(self, format: str, *args) -> None:  # noqa: A003
        return


def _serve(
    responses: list[Any] | None = None,
    *,
    routes: dict[str, Any] | None = None,
    http_routes: dict[str, Any] | None = None,
) -> tuple[HTTPServer, str]:
    _RPCHandler.responses = list(responses or [])
    _RPCHandler.routes = dict(routes or {})
    _RPCHandler.http_routes = dict(http_routes or {})
    _RPCHandler.calls = []
    server = HTTPServer(("127.0.0.1", 0), _RPCHandler)
    url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, url


def _stop(server: HTTPServer) -> None:
    server.shutdown()
    server.server_close()


def _rpc_calls(method: str | None = None) -> list[dict[str, Any]]:
    return [c for c in _RPCHandler.calls if "method" in c and (method is None or c["method"] == method)]


def _http_calls(path: str | None = None) -> list[dict[str, Any]]:
    return [c for c in _RPCHandler.calls if "http" in c and (path is None or c["path"] == path)]


def _client(
    url: str,
    *,
    network: str = "mainnet",
    private_key: str | None = None,
    api: ApiCredentials | None = None,
    context: dict[str, Any] | None = None,
    l1_url: str | None = None,
) -> ScrollClient:
    config = replace(NETWORKS[network], rpc_url=url, l1_rpc_url=l1_url or url)
    credentials = NetworkCredentials(network=network, rpc_url=url, private_key=private_key)
    return ScrollClient(
        config,
        credentials,
        api,
        timeout_seconds=2,
        context=context,
        sleep=lambda _seconds: None,
    )


def _pad_address(addr: str) -> str:
    return f"0x{'0'*24}{addr[2:].lower()}"


def _word(value: int) -> str:
    return "0x" + format(value, "064x")


def _block(number: int, *, timestamp: int = 1_700_000_000, txs: list[Any] | None = None, **extra: Any) -> dict[str, Any]:
    block = {
        "number": hex(number),
        "hash": "0x" + format(number, "064x"),
        "parentHash": "0x" + format(max(number - 1, 0), "064x"),
        "timestamp": hex(timestamp),
        "gasUsed": hex(15_000_000),
        "gasLimit": hex(30_000_000),
        "baseFeePerGas": hex(1_000_000),
        "miner": "0x0000000000000000000000000000000000000000",
        "transactions": txs if txs is not None else [],
    }
    block.update(extra)
    return block


def _node_env(url: str, **extra: str) -> dict[str, str]:
    env = {"SCROLL_NETWORK": "mainnet", "SCROLL_RPC_URL": url, "SCROLL_L1_RPC_URL": url}
    env.update(extra)
    return env


def _run_cli(args: list[str], extra_env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    cmd = [sys.executable, "-m", "scroll_node", *args]
    env = os.environ.copy()
    for key in list(env):
        if key.startswith("SCROLL") or key == "SCROLLSCAN_API_KEY":
            env.pop(key)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), env.get("PYTHONPATH")]))
    if extra_env:
        env.update(extra_env)
    return subprocess.run(cmd, capture_output=True, text=True, check=False, env=env, cwd=str(ROOT))
