"""Error codes and exception types shared by the scroll-node modules."""

from __future__ import annotations

from typing import Any

ERR_INVALID_REQUEST = "INVALID_REQUEST"
ERR_RPC_TRANSPORT = "RPC_TRANSPORT_ERROR"
ERR_RPC_TIMEOUT = "RPC_TIMEOUT"
ERR_RPC_REMOTE = "RPC_REMOTE_ERROR"
ERR_POLICY_DENIED = "POLICY_DENIED"
ERR_UNKNOWN_RESOURCE = "UNKNOWN_RESOURCE"
ERR_UNKNOWN_OPERATION = "UNKNOWN_OPERATION"
ERR_UNKNOWN_EVENT = "UNKNOWN_EVENT"
ERR_MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
ERR_ABI_ENCODE_FAILED = "ABI_ENCODE_FAILED"
ERR_ABI_DECODE_FAILED = "ABI_DECODE_FAILED"
ERR_HTTP_API = "HTTP_API_ERROR"
ERR_NOT_FOUND = "NOT_FOUND"
ERR_TX_TIMEOUT = "TRANSACTION_TIMEOUT"
ERR_BROADCAST_ALREADY_KNOWN = "BROADCAST_ALREADY_KNOWN"
ERR_BROADCAST_NONCE_TOO_LOW = "BROADCAST_NONCE_TOO_LOW"
ERR_BROADCAST_UNDERPRICED = "BROADCAST_UNDERPRICED"
ERR_BROADCAST_INSUFFICIENT_FUNDS = "BROADCAST_INSUFFICIENT_FUNDS"
ERR_INTERNAL = "INTERNAL_ERROR"

EXIT_OK = 0
EXIT_REMOTE = 1
EXIT_INVALID = 2
EXIT_DENIED = 4


class ScrollNodeError(Exception):
    """Base error carrying an error code and the exit code the CLI reports."""

    error_code = ERR_INTERNAL
    exit_code = EXIT_INVALID
    status = "error"

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class RpcCallError(ScrollNodeError):
    exit_code = EXIT_REMOTE

    def __init__(
        self,
        message: str,
        *,
        error_code: str = ERR_RPC_REMOTE,
        rpc_request: dict[str, Any] | None = None,
        rpc_response: Any = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.error_code = error_code
        self.rpc_request = rpc_request
        self.rpc_response = rpc_response
        if error_code == ERR_RPC_TIMEOUT:
            self.status = "timeout"


class HttpApiError(ScrollNodeError):
    error_code = ERR_HTTP_API
    exit_code = EXIT_REMOTE

    def __init__(self, message: str, *, url: str = "", response: Any = None, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.url = url
        self.response = response


class MissingCredentialsError(ScrollNodeError):
    error_code = ERR_MISSING_CREDENTIALS


class PolicyDeniedError(ScrollNodeError):
    error_code = ERR_POLICY_DENIED
    exit_code = EXIT_DENIED
    status = "denied"


class UnknownResourceError(ScrollNodeError):
    error_code = ERR_UNKNOWN_RESOURCE


class UnknownOperationError(ScrollNodeError):
    error_code = ERR_UNKNOWN_OPERATION


class NotFoundError(ScrollNodeError):
    error_code = ERR_NOT_FOUND
    exit_code = EXIT_REMOTE


class TransactionTimeoutError(ScrollNodeError):
    error_code = ERR_TX_TIMEOUT
    exit_code = EXIT_REMOTE
    status = "timeout"


class AbiCodecError(ScrollNodeError, ValueError):
    def __init__(self, message: str, *, error_code: str = ERR_ABI_ENCODE_FAILED) -> None:
        super().__init__(message)
        self.error_code = error_code


class UnknownEventError(ScrollNodeError):
    error_code = ERR_UNKNOWN_EVENT
