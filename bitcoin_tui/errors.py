from dataclasses import dataclass
from enum import Enum

from requests.exceptions import ConnectionError, HTTPError, Timeout


class ErrorKind(Enum):
    CONNECTION = "connection"
    BAD_ARGUMENT = "bad_argument"
    NO_WALLET_SELECTED = "no_wallet_selected"
    RPC = "rpc"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"


class TuiError(Exception):
    kind = ErrorKind.CONNECTION


class RpcConnectionError(TuiError):
    """The node could not be reached, or answered with something that is not JSON-RPC."""

    kind = ErrorKind.CONNECTION


class RpcTimeout(RpcConnectionError):
    kind = ErrorKind.TIMEOUT


@dataclass
class RpcError(TuiError):
    """The node rejected a well-formed call."""

    code: int
    message: str

    kind = ErrorKind.RPC

    def __str__(self) -> str:
        return f"RPC error {self.code}: {self.message}"


class BadArgument(TuiError):
    kind = ErrorKind.BAD_ARGUMENT

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.position = position


class NoWalletSelected(TuiError):
    kind = ErrorKind.NO_WALLET_SELECTED

    def __init__(self, method: str = "") -> None:
        message = "No wallet selected. Press w to choose a wallet"
        if method:
            message = f"{method} needs a wallet. Press w to choose one"
        super().__init__(message)
        self.method = method


class QueryError(TuiError):
    kind = ErrorKind.BAD_ARGUMENT

    def __init__(self, message: str, position: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.position = position


# Bitcoin Core answers -5 for unknown txids, blocks and wallets.
RPC_INVALID_ADDRESS_OR_KEY = -5
RPC_IN_WARMUP = -28


def classify_error(error: Exception) -> ErrorKind:
    if isinstance(error, TuiError):
        return error.kind
    if isinstance(error, Timeout):
        return ErrorKind.TIMEOUT
    if isinstance(error, (ConnectionError, HTTPError)):
        return ErrorKind.CONNECTION
    return ErrorKind.CONNECTION


def describe_error(error: Exception) -> str:
    kind = classify_error(error)
    if kind == ErrorKind.TIMEOUT:
        return f"Request timed out: {error}" if str(error) else "Request timed out"
    if kind == ErrorKind.CONNECTION and not isinstance(error, TuiError):
        return f"Connection failed: {error}"
    return str(error)
