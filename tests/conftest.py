import pytest

from bitcoin_tui.config import ConnectionConfig, Credential
from bitcoin_tui.errors import RpcError
from bitcoin_tui.services.rpc import RpcClient

TXID = "a1b2" * 16
BLOCK_HASH = "00" * 4 + "b7" * 28


class FakeRpc(RpcClient):
    """RpcClient whose transport is a dict of canned answers.

    A value may be the result itself, an exception to raise, or a callable
    taking the positional params.
    """

    def __init__(self, responses=None):
        super().__init__(ConnectionConfig(credential=Credential(user="u", password="p")))
        self.responses = dict(responses or {})
        self.calls = []

    def call(self, method, params=None, wallet=None):
        params = list(params or [])
        self.calls.append((method, params, wallet))
        answer = self.responses.get(method)
        if answer is None:
            raise RpcError(-32601, "Method not found")
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(*params)
        return answer

    def methods_called(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_rpc():
    """Factory fixture: fake_rpc({"getblockcount": 10}) -> FakeRpc."""
    return FakeRpc


@pytest.fixture
def peers():
    return [
        {
            "id": 1,
            "addr": "203.0.113.5:8333",
            "network": "ipv4",
            "version": 70016,
            "subver": "/Satoshi:27.0.0/",
            "inbound": False,
            "connection_type": "outbound-full-relay",
            "pingtime": 0.051,
            "bytessent": 1200,
            "bytesrecv": 5400,
            "bytessent_per_msg": {"addrv2": 300, "ping": 32},
            "synced_blocks": 850000,
        },
        {
            "id": 2,
            "addr": "198.51.100.7:8333",
            "network": "ipv4",
            "version": 70015,
            "subver": "/btcd:0.24.0/",
            "inbound": True,
            "connection_type": "inbound",
            "pingtime": 0.12,
            "bytessent": 800,
            "bytesrecv": 2100,
            "bytessent_per_msg": {"ping": 64},
            "synced_blocks": 849990,
        },
        {
            "id": 3,
            "addr": "[2001:db8::1]:8333",
            "network": "ipv6",
            "version": 70016,
            "subver": "/Satoshi:26.1.0/",
            "inbound": False,
            "connection_type": "block-relay-only",
            "pingtime": 0.03,
            "bytessent": 4000,
            "bytesrecv": 9000,
            "bytessent_per_msg": {"addrv2": 1200},
            "synced_blocks": 850000,
        },
    ]
