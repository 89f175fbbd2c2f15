import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from bitcoin_tui.catalog import MethodDescriptor
from bitcoin_tui.errors import (
    BadArgument,
    ErrorKind,
    NoWalletSelected,
    RpcConnectionError,
    RpcError,
    classify_error,
    describe_error,
)
from bitcoin_tui.services.rpc import RpcClient

logger = logging.getLogger(__name__)

_OPENERS = {"[": "]", "{": "}"}


@dataclass(frozen=True)
class CallRequest:
    """A validated call. Build it with prepare_call, never directly."""

    method: MethodDescriptor
    params: tuple = ()
    raw_args: str = ""
    target_wallet: str | None = None

    @property
    def wallet(self) -> str | None:
        return self.target_wallet if self.method.is_wallet else None


@dataclass(frozen=True)
class CallSuccess:
    value: Any
    elapsed: float


@dataclass(frozen=True)
class CallFailure:
    kind: ErrorKind
    message: str
    elapsed: float = 0.0
    code: int | None = None


CallResult = CallSuccess | CallFailure


def _split_top_level(text: str) -> list[str]:
    tokens: list[str] = []
    closers: list[str] = []
    in_string = False
    escaped = False
    start = 0
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            closers.append(_OPENERS[ch])
        elif closers and ch == closers[-1]:
            closers.pop()
        elif ch == "," and not closers:
            tokens.append(text[start:i].strip())
            start = i + 1
    tokens.append(text[start:].strip())
    return tokens


def parse_args(text: str) -> list:
    """Parse comma separated JSON literals, e.g. ``"*", 6`` -> ["*", 6].

    Commas inside brackets, braces and strings do not split. Positions in
    errors are 1-based.
    """
    if not text.strip():
        return []
    values = []
    for position, token in enumerate(_split_top_level(text), start=1):
        if not token:
            raise BadArgument(f"Argument {position} is empty", position)
        try:
            values.append(json.loads(token))
        except json.JSONDecodeError as e:
            raise BadArgument(
                f"Argument {position} is not valid JSON: {token} ({e.msg})", position
            ) from e
    return values


def build_params(method: MethodDescriptor, args: list) -> list:
    """Fill in trailing parameters the user did not type.

    Defaulted parameters get their default. The first optional parameter
    without a default ends the list, since JSON-RPC params are positional.
    """
    params = method.params
    if len(args) > len(params):
        raise BadArgument(
            f"{method.name} takes at most {len(params)} argument(s), got {len(args)}",
            len(params) + 1,
        )
    for position, param in enumerate(params[len(args):], start=len(args) + 1):
        if param.required:
            raise BadArgument(f"Missing required argument {position}: {param.name}", position)

    result = list(args)
    for param in params[len(args):]:
        if param.default is None:
            break
        result.append(json.loads(param.default))
    return result


def prepare_call(method: MethodDescriptor, text: str, wallet: str | None) -> CallRequest:
    if method.is_wallet and wallet is None:
        raise NoWalletSelected(method.name)
    params = build_params(method, parse_args(text))
    return CallRequest(method=method, params=tuple(params), raw_args=text, target_wallet=wallet)


def execute_call(rpc: RpcClient, request: CallRequest) -> CallResult:
    started = time.monotonic()
    try:
        value = rpc.call(request.method.name, list(request.params), wallet=request.wallet)
    except RpcError as e:
        elapsed = time.monotonic() - started
        logger.info("%s failed with code %s after %.3fs", request.method.name, e.code, elapsed)
        return CallFailure(ErrorKind.RPC, e.message, elapsed, e.code)
    except RpcConnectionError as e:
        elapsed = time.monotonic() - started
        logger.warning("%s: %s", request.method.name, e)
        return CallFailure(classify_error(e), describe_error(e), elapsed)
    elapsed = time.monotonic() - started
    logger.debug("%s ok in %.3fs", request.method.name, elapsed)
    return CallSuccess(value, elapsed)


def needs_form(method: MethodDescriptor) -> bool:
    return bool(method.params)


def list_wallets(rpc: RpcClient) -> list[str]:
    result = rpc.listwallets()
    if not isinstance(result, list):
        return []
    return [str(name) for name in result]
