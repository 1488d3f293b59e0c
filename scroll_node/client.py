"""Scroll L2/L1 JSON-RPC client with local signing and REST helpers."""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Callable

from eth_account import Account

from .abi_codec import AbiFragment, decode_function_result, encode_function_call, parse_function_signature, parse_types
from .config import ApiCredentials, NetworkCredentials
from .envelope import build_error_payload, build_ok_payload
from .error_map import (
    ERR_BROADCAST_ALREADY_KNOWN,
    ERR_BROADCAST_INSUFFICIENT_FUNDS,
    ERR_BROADCAST_NONCE_TOO_LOW,
    ERR_BROADCAST_UNDERPRICED,
    ERR_RPC_REMOTE,
    ERR_RPC_TIMEOUT,
    ERR_RPC_TRANSPORT,
    HttpApiError,
    MissingCredentialsError,
    RpcCallError,
    TransactionTimeoutError,
)
from .gas_utils import add_gas_buffer
from .networks import NetworkConfig, resolve_network
from .quantity import hex_to_int, to_hex_quantity
from .rpc_contract import DEFAULT_TIMEOUT_SECONDS, normalized_context, resolve_rpc_endpoints
from .rpc_transport import build_url, http_request_json, invoke_rpc_endpoints
from .tokens import get_canvas_config

logger = logging.getLogger(__name__)

BROADCAST_METHODS = {"eth_sendRawTransaction", "eth_sendUserOperation"}
READ_RETRIES = 2
DEFAULT_WAIT_TIMEOUT_SECONDS = 120.0
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
EXPLORER_NO_KEY_MESSAGE = "Scrollscan API key required for this operation. Configure it in the credentials."
EXPLORER_EMPTY_MESSAGES = ("no transactions found", "no records found", "no token transfers found")


def map_broadcast_remote_error(rpc_response: dict[str, Any]) -> str:
    err = rpc_response.get("error")
    if not isinstance(err, dict):
        return ERR_RPC_REMOTE
    message = str(err.get("message", "")).lower()
    if "already known" in message:
        return ERR_BROADCAST_ALREADY_KNOWN
    if "nonce too low" in message:
        return ERR_BROADCAST_NONCE_TOO_LOW
    if "underpriced" in message:
        return ERR_BROADCAST_UNDERPRICED
    if "insufficient funds" in message:
        return ERR_BROADCAST_INSUFFICIENT_FUNDS
    return ERR_RPC_REMOTE


def remote_error_hint(method: str, rpc_response: dict[str, Any]) -> str | None:
    err = rpc_response.get("error")
    if not isinstance(err, dict):
        return None

    code = err.get("code")
    message = str(err.get("message", "")).lower()
    combined = f"{method} {message}"

    if code == -32602:
        return "provider rejected params (-32602). check address/topic format and block range values."

    range_patterns = (
        "query returned more than",
        "too many results",
        "response size exceeded",
        "block range",
        "limit exceeded",
    )
    if any(p in combined for p in range_patterns):
        return "provider rejected range/size. narrow from_block/to_block or lower the block count."

    if any(p in combined for p in ("timed out", "timeout", "deadline exceeded")):
        return "provider timed out. narrow the request or retry with a faster RPC endpoint."

    if "method not found" in combined or code == -32601:
        return "provider does not support this method on the current endpoint."

    return None


def transport_error_hint(method: str, error_code: str, error_message: str) -> str | None:
    lowered = str(error_message).lower()
    if error_code == ERR_RPC_TIMEOUT:
        if method == "eth_getLogs":
            return "eth_getLogs timed out. narrow the block range."
        return "request timed out. retry or use a faster RPC endpoint."
    if "429" in lowered or "rate limit" in lowered:
        return "rate limited by provider. slow down requests or switch endpoint."
    return None


def _tx_hex(value: Any) -> str:
    return "0x" + bytes(value).hex()


class ScrollClient:
    """Thin wrapper over one JSON-RPC endpoint list plus the network's REST collaborators."""

    def __init__(
        self,
        network: NetworkConfig,
        credentials: NetworkCredentials | None = None,
        api: ApiCredentials | None = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        context: dict[str, Any] | None = None,
        layer: str = "l2",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.network = network
        self.credentials = credentials or NetworkCredentials(network=network.key)
        self.api = api or ApiCredentials(environment="sepolia" if network.key == "sepolia" else "mainnet")
        self.timeout_seconds = float(timeout_seconds)
        self.context = normalized_context(context)
        self.layer = layer
        self.rpc_urls = resolve_rpc_endpoints(network.rpc_url)
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._account = None
        if self.credentials.private_key:
            try:
                self._account = Account.from_key(self.credentials.private_key)
            except (ValueError, TypeError):
                raise ValueError("Invalid private key in credentials") from None

    # -- raw JSON-RPC ---------------------------------------------------------

    def call(self, method: str, params: list[Any] | None = None, *, retries: int | None = None) -> Any:
        rpc_params = list(params or [])
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": rpc_params}
        if retries is None:
            retries = 0 if method in BROADCAST_METHODS else READ_RETRIES

        started = time.monotonic()
        transport, endpoint = invoke_rpc_endpoints(
            rpc_urls=self.rpc_urls,
            payload=payload,
            timeout_seconds=self.timeout_seconds,
            retries=retries,
        )
        logger.debug(
            "%s %s via %s took %dms",
            self.layer,
            method,
            endpoint,
            int((time.monotonic() - started) * 1000),
        )

        if not transport["ok"]:
            raise RpcCallError(
                f"{method} failed: {transport['error_message']}",
                error_code=transport["error_code"],
                rpc_request=payload,
                rpc_response=transport["rpc_response"],
                hint=transport_error_hint(method, transport["error_code"], transport["error_message"]),
            )

        rpc_response = transport["rpc_response"]
        if not isinstance(rpc_response, dict):
            raise RpcCallError(
                f"{method} returned a non-object response",
                error_code=ERR_RPC_TRANSPORT,
                rpc_request=payload,
                rpc_response=rpc_response,
            )
        if rpc_response.get("error") is not None:
            err = rpc_response["error"]
            message = err.get("message", "remote error") if isinstance(err, dict) else str(err)
            code = map_broadcast_remote_error(rpc_response) if method in BROADCAST_METHODS else ERR_RPC_REMOTE
            raise RpcCallError(
                f"{method} failed: {message}",
                error_code=code,
                rpc_request=payload,
                rpc_response=rpc_response,
                hint=remote_error_hint(method, rpc_response),
            )
        return rpc_response.get("result")

    def request(self, method: str, params: list[Any] | None = None) -> tuple[int, dict[str, Any]]:
        started = time.monotonic()
        try:
            result = self.call(method, params)
        except RpcCallError as err:
            return err.exit_code, build_error_payload(
                method=method,
                status=err.status,
                code=err.error_code,
                message=err.message,
                rpc_request=err.rpc_request,
                rpc_response=err.rpc_response,
                duration_ms=int((time.monotonic() - started) * 1000),
                hint=err.hint,
            )
        return 0, build_ok_payload(
            method=method,
            result=result,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    # -- convenience reads ----------------------------------------------------

    def get_block_number(self) -> int:
        return hex_to_int(self.call("eth_blockNumber"))

    def get_chain_id(self) -> int:
        return hex_to_int(self.call("eth_chainId"))

    def get_balance(self, address: str, block: str = "latest") -> int:
        return hex_to_int(self.call("eth_getBalance", [address, block]))

    def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return hex_to_int(self.call("eth_getTransactionCount", [address, block]))

    def get_code(self, address: str, block: str = "latest") -> str:
        return self.call("eth_getCode", [address, block]) or "0x"

    def get_block(self, block_id: Any = "latest", full: bool = False) -> dict[str, Any] | None:
        if isinstance(block_id, int):
            return self.call("eth_getBlockByNumber", [to_hex_quantity(block_id), full])
        block_ref = str(block_id)
        if len(block_ref) == 66 and block_ref.startswith("0x"):
            return self.call("eth_getBlockByHash", [block_ref, full])
        return self.call("eth_getBlockByNumber", [block_ref, full])

    def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        return self.call("eth_getTransactionByHash", [tx_hash])

    def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return self.call("eth_getTransactionReceipt", [tx_hash])

    def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        return self.call("eth_getLogs", [log_filter]) or []

    def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
        *,
        value: int | None = None,
        from_address: str | None = None,
    ) -> str:
        call_obj: dict[str, Any] = {"to": to, "data": data}
        if value:
            call_obj["value"] = to_hex_quantity(value)
        if from_address:
            call_obj["from"] = from_address
        return self.call("eth_call", [call_obj, block]) or "0x"

    def estimate_gas(self, tx: dict[str, Any]) -> int:
        call_obj: dict[str, Any] = {}
        for key in ("from", "to", "data"):
            if tx.get(key):
                call_obj[key] = tx[key]
        if tx.get("value"):
            call_obj["value"] = to_hex_quantity(int(tx["value"]))
        return hex_to_int(self.call("eth_estimateGas", [call_obj]))

    def get_gas_price(self) -> int:
        return hex_to_int(self.call("eth_gasPrice"))

    def get_max_priority_fee(self) -> int:
        return hex_to_int(self.call("eth_maxPriorityFeePerGas"))

    def get_fee_data(self) -> dict[str, int | None]:
        gas_price = self.get_gas_price()
        block = self.get_block("latest") or {}
        base_fee = hex_to_int(block.get("baseFeePerGas"))
        try:
            priority = self.get_max_priority_fee()
        except RpcCallError as err:
            if err.error_code != ERR_RPC_REMOTE:
                raise
            logger.debug("eth_maxPriorityFeePerGas unavailable, deriving from gas price")
            priority = max(gas_price - (base_fee or 0), 0)
        max_fee = base_fee * 2 + priority if base_fee is not None else None
        return {
            "gas_price": gas_price,
            "base_fee_per_gas": base_fee,
            "max_priority_fee_per_gas": priority,
            "max_fee_per_gas": max_fee,
        }

    def read_contract(
        self,
        address: str,
        signature: str | AbiFragment,
        args: list[Any] | None = None,
        returns: Any = None,
        *,
        block: str = "latest",
    ) -> Any:
        fragment = signature if isinstance(signature, AbiFragment) else parse_function_signature(signature)
        if returns is not None:
            fragment = AbiFragment(
                kind=fragment.kind,
                name=fragment.name,
                inputs=fragment.inputs,
                outputs=tuple(parse_types(returns)),
                state_mutability=fragment.state_mutability,
            )
        data = encode_function_call(fragment, list(args or []))
        raw = self.eth_call(address, data, block)
        if not fragment.outputs:
            return raw
        return decode_function_result(fragment, raw)

    # -- signing --------------------------------------------------------------

    @property
    def has_signer(self) -> bool:
        return self._account is not None

    @property
    def signer_address(self) -> str:
        return self._require_account().address

    def _require_account(self) -> Any:
        if self._account is None:
            raise MissingCredentialsError("Private key required for this operation. Configure it in the credentials.")
        return self._account

    @property
    def chain_id(self) -> int:
        return int(self.credentials.chain_id or self.network.chain_id)

    def populate_transaction(self, tx: dict[str, Any], *, account: Any = None) -> dict[str, Any]:
        """Fill nonce, chain id, gas and fees for an unsigned transaction dict."""
        signer = account or self._require_account()
        out: dict[str, Any] = {
            "chainId": int(tx.get("chainId") or self.chain_id),
            "value": int(tx.get("value") or 0),
            "data": tx.get("data") or "0x",
        }
        if tx.get("to"):
            out["to"] = tx["to"]
        nonce = tx.get("nonce")
        out["nonce"] = int(nonce) if nonce is not None else self.get_transaction_count(signer.address, "pending")

        gas = tx.get("gas") or tx.get("gas_limit")
        if gas is None:
            estimate = self.estimate_gas({**out, "from": signer.address})
            gas = add_gas_buffer(estimate)
        out["gas"] = int(gas)

        if tx.get("gasPrice") or tx.get("gas_price"):
            out["gasPrice"] = int(tx.get("gasPrice") or tx.get("gas_price"))
        elif tx.get("maxFeePerGas") or tx.get("max_fee_per_gas"):
            out["maxFeePerGas"] = int(tx.get("maxFeePerGas") or tx.get("max_fee_per_gas"))
            out["maxPriorityFeePerGas"] = int(
                tx.get("maxPriorityFeePerGas") or tx.get("max_priority_fee_per_gas") or 0
            )
        else:
            fees = self.get_fee_data()
            if fees["max_fee_per_gas"] is not None:
                out["maxFeePerGas"] = int(fees["max_fee_per_gas"])
                out["maxPriorityFeePerGas"] = int(fees["max_priority_fee_per_gas"] or 0)
            else:
                out["gasPrice"] = int(fees["gas_price"])
        return out

    def sign_transaction(self, tx: dict[str, Any], *, account: Any = None) -> dict[str, Any]:
        signer = account or self._require_account()
        populated = self.populate_transaction(tx, account=signer)
        signed = signer.sign_transaction(populated)
        return {
            "raw_transaction": _tx_hex(signed.raw_transaction),
            "hash": _tx_hex(signed.hash),
            "from": signer.address,
            "transaction": populated,
        }

    def send_transaction(
        self,
        tx: dict[str, Any],
        *,
        wait: bool = True,
        confirmations: int = 1,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        account: Any = None,
    ) -> dict[str, Any]:
        signed = self.sign_transaction(tx, account=account)
        tx_hash = self.call("eth_sendRawTransaction", [signed["raw_transaction"]]) or signed["hash"]
        logger.info("broadcast %s from %s nonce %s", tx_hash, signed["from"], signed["transaction"]["nonce"])
        out: dict[str, Any] = {
            "hash": tx_hash,
            "from": signed["from"],
            "to": signed["transaction"].get("to"),
            "nonce": signed["transaction"]["nonce"],
            "value": str(signed["transaction"]["value"]),
            "gas_limit": str(signed["transaction"]["gas"]),
        }
        out["status"] = "pending"
        if wait:
            self.settle_transaction(out, confirmations=confirmations, timeout_seconds=timeout_seconds)
        return out

    def settle_transaction(
        self,
        sent: dict[str, Any],
        *,
        confirmations: int = 1,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
    ) -> dict[str, Any]:
        """Wait for the receipt of a broadcast result and fold it into ``sent``."""
        receipt = self.wait_for_transaction(sent["hash"], confirmations=confirmations, timeout_seconds=timeout_seconds)
        sent["receipt"] = receipt
        sent["status"] = "success" if hex_to_int(receipt.get("status")) == 1 else "failed"
        sent["block_number"] = hex_to_int(receipt.get("blockNumber"))
        sent["gas_used"] = str(hex_to_int(receipt.get("gasUsed")) or 0)
        return sent

    def write_contract(
        self,
        address: str,
        signature: str | AbiFragment,
        args: list[Any] | None = None,
        *,
        value: int = 0,
        gas_limit: int | None = None,
        wait: bool = True,
    ) -> dict[str, Any]:
        fragment = signature if isinstance(signature, AbiFragment) else parse_function_signature(signature)
        tx: dict[str, Any] = {
            "to": address,
            "data": encode_function_call(fragment, list(args or [])),
            "value": value,
        }
        if gas_limit:
            tx["gas"] = gas_limit
        return self.send_transaction(tx, wait=wait)

    def wait_for_transaction(
        self,
        tx_hash: str,
        *,
        confirmations: int = 1,
        timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> dict[str, Any]:
        deadline = time.monotonic() + timeout_seconds
        while True:
            receipt = self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber"):
                mined_at = hex_to_int(receipt["blockNumber"])
                if confirmations <= 1 or self.get_block_number() - mined_at + 1 >= confirmations:
                    return receipt
            if time.monotonic() >= deadline:
                raise TransactionTimeoutError(
                    f"Transaction {tx_hash} not confirmed within {timeout_seconds:g}s",
                    hint="the transaction may still be pending; check getTransactionStatus later.",
                )
            self._sleep(poll_interval)

    # -- other collaborators --------------------------------------------------

    def l1_client(self) -> "ScrollClient":
        if not self.network.l1_rpc_url:
            raise MissingCredentialsError("L1 RPC URL required for this operation. Configure l1_rpc_url.")
        l1_network = NetworkConfig(
            key=self.network.key,
            name=f"{self.network.name} L1",
            chain_id=self.network.l1_chain_id,
            rpc_url=self.network.l1_rpc_url,
            ws_url="",
            explorer_url="",
            explorer_api_url="",
            bridge_api_url=self.network.bridge_api_url,
            l1_chain_id=self.network.l1_chain_id,
            l1_rpc_url=self.network.l1_rpc_url,
            is_testnet=self.network.is_testnet,
        )
        return ScrollClient(
            l1_network,
            NetworkCredentials(network=self.network.key),
            self.api,
            timeout_seconds=self.timeout_seconds,
            context=self.context,
            layer="l1",
            sleep=self._sleep,
        )

    @property
    def explorer_api_url(self) -> str:
        return self.api.scrollscan_endpoint or self.network.explorer_api_url

    @property
    def explorer_api_key(self) -> str | None:
        return self.api.scrollscan_api_key or self.credentials.explorer_api_key

    @property
    def bridge_api_url(self) -> str:
        return (self.api.bridge_api_endpoint or self.network.bridge_api_url).rstrip("/")

    @property
    def canvas_api_url(self) -> str:
        return (self.api.canvas_api_endpoint or get_canvas_config(self.network.key)["api_endpoint"]).rstrip("/")

    @property
    def subgraph_url(self) -> str | None:
        return self.api.subgraph_url

    def _http(self, url: str, *, method: str, body: Any = None, headers: dict[str, str] | None = None) -> Any:
        transport = http_request_json(
            url=url,
            method=method,
            body=body,
            headers=headers,
            timeout_seconds=self.timeout_seconds,
            retries=READ_RETRIES,
        )
        if not transport["ok"]:
            err = HttpApiError(
                f"{method} {url.split('?')[0]} failed: {transport['error_message']}",
                url=url.split("?")[0],
                response=transport["response"],
                hint=transport_error_hint("", transport["error_code"], transport["error_message"]),
            )
            if transport["error_code"] == ERR_RPC_TIMEOUT:
                err.status = "timeout"
            raise err
        return transport["response"]

    def http_get_json(self, url: str, query: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
        return self._http(build_url(url, query), method="GET", headers=headers)

    def http_post_json(self, url: str, body: Any, headers: dict[str, str] | None = None) -> Any:
        return self._http(url, method="POST", body=body, headers=headers)

    def explorer_get(self, params: dict[str, Any]) -> Any:
        """Scrollscan (etherscan-compatible) query; None when no API key is configured."""
        api_key = self.explorer_api_key
        if not api_key:
            return None
        if not self.explorer_api_url:
            raise MissingCredentialsError("Scrollscan endpoint is not configured for this network")
        response = self.http_get_json(self.explorer_api_url, {**params, "apikey": api_key})
        if not isinstance(response, dict):
            raise HttpApiError("Scrollscan returned an unexpected response", url=self.explorer_api_url)
        if str(response.get("status", "1")) == "0":
            message = str(response.get("message", ""))
            result = response.get("result")
            if any(m in message.lower() for m in EXPLORER_EMPTY_MESSAGES):
                return []
            raise HttpApiError(
                f"Scrollscan error: {result if isinstance(result, str) else message}",
                url=self.explorer_api_url,
                response={"status": response.get("status"), "message": message},
            )
        return response.get("result")


def create_scroll_client(
    network_credentials: NetworkCredentials,
    api_credentials: ApiCredentials | None = None,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    context: dict[str, Any] | None = None,
) -> ScrollClient:
    network = resolve_network(network_credentials)
    return ScrollClient(
        network,
        network_credentials,
        api_credentials,
        timeout_seconds=timeout_seconds,
        context=context,
    )

