import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from bitcoin_tui.config import ConnectionConfig
from bitcoin_tui.errors import RpcConnectionError, RpcError, RpcTimeout

logger = logging.getLogger(__name__)


class RpcClient:
    """Authenticated JSON-RPC calls against one node, node-level or /wallet/<name>.

    Calls block; callers run them in an executor. There is no retry or caching here.
    """

    def __init__(self, config: ConnectionConfig) -> None:
        self.config = config
        self.rpc_host = config.host
        self.rpc_port = config.port
        self.timeout = config.timeout

    def _rpc_url(self, wallet: Optional[str] = None) -> str:
        url = f"http://{self.rpc_host}:{self.rpc_port}"
        if wallet is not None:
            url = f"{url}/wallet/{quote(wallet, safe='')}"
        return url

    def _auth(self) -> tuple[str, str]:
        try:
            return self.config.credential.auth()
        except OSError as e:
            raise RpcConnectionError(f"Cannot read RPC cookie: {e}") from e

    def call(self, method: str, params: Optional[list] = None, wallet: Optional[str] = None) -> Any:
        payload = {"jsonrpc": "1.0", "id": method, "method": method, "params": params or []}
        url = self._rpc_url(wallet)
        logger.debug("rpc %s wallet=%s params=%d", method, wallet, len(payload["params"]))
        try:
            response = requests.post(
                url,
                auth=self._auth(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RpcTimeout(f"{method} timed out after {self.timeout:g}s") from e
        except requests.exceptions.RequestException as e:
            raise RpcConnectionError(f"RPC connection failed: {e}") from e

        if response.status_code == 401:
            raise RpcConnectionError("RPC authentication failed (HTTP 401)")
        try:
            data = response.json()
        except ValueError as e:
            raise RpcConnectionError(
                f"RPC error (HTTP {response.status_code}): {response.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise RpcConnectionError(f"Unexpected RPC response for {method}")
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                code = error.get("code")
                raise RpcError(
                    code if isinstance(code, int) else 0,
                    str(error.get("message", "")),
                )
            raise RpcError(0, str(error))
        if not response.ok:
            raise RpcConnectionError(f"RPC error (HTTP {response.status_code})")
        return data.get("result")

    def getblockchaininfo(self) -> Any:
        return self.call("getblockchaininfo")

    def getblockcount(self) -> Any:
        return self.call("getblockcount")

    def getblockhash(self, height: int) -> Any:
        return self.call("getblockhash", [height])

    def getblock(self, block_hash: str, verbosity: int = 1) -> Any:
        return self.call("getblock", [block_hash, verbosity])

    def getblockheader(self, block_hash: str) -> Any:
        return self.call("getblockheader", [block_hash, True])

    def getmempoolentry(self, txid: str) -> Any:
        return self.call("getmempoolentry", [txid])

    def getrawtransaction(self, txid: str, verbose: bool = True) -> Any:
        return self.call("getrawtransaction", [txid, verbose])

    def listwallets(self) -> Any:
        return self.call("listwallets")
