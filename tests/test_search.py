import pytest

from bitcoin_tui.errors import BadArgument, RpcConnectionError, RpcError
from bitcoin_tui.search import ConfirmedHit, MempoolHit, NotFound, search_transaction, txid_candidates

from conftest import BLOCK_HASH, TXID

REVERSED = bytes.fromhex(TXID)[::-1].hex()
NOT_IN_MEMPOOL = RpcError(-5, "Transaction not in mempool")
NO_TX = RpcError(-5, "No such mempool or blockchain transaction. Use gettransaction for wallet transactions.")

MEMPOOL_ENTRY = {
    "vsize": 141,
    "weight": 561,
    "time": 1700000000,
    "ancestorcount": 1,
    "descendantcount": 2,
    "fees": {"base": 0.00001410, "modified": 0.00001410},
}

CONFIRMED_TX = {
    "txid": TXID,
    "vsize": 225,
    "weight": 900,
    "vin": [{"txid": "cc" * 32, "vout": 0}],
    "vout": [{"value": 0.5}, {"value": 0.25}],
    "blockhash": BLOCK_HASH,
    "confirmations": 3,
    "blocktime": 1700000000,
}


class TestTxidCandidates:
    def test_typed_then_reversed(self):
        txid = "00" * 31 + "ff"
        assert txid_candidates(txid.upper()) == [txid, "ff" + "00" * 31]

    def test_palindrome_single_candidate(self):
        assert txid_candidates("ab" * 32) == ["ab" * 32]

    @pytest.mark.parametrize("text", ["", "abc", "zz" * 32, "a" * 65])
    def test_invalid(self, text):
        with pytest.raises(BadArgument):
            txid_candidates(text)


class TestSearchTransaction:
    def test_mempool_hit(self, fake_rpc):
        rpc = fake_rpc({"getmempoolentry": MEMPOOL_ENTRY, "getrawtransaction": {"txid": TXID}})
        result = search_transaction(rpc, TXID)
        assert isinstance(result, MempoolHit)
        assert result.fee == pytest.approx(0.0000141)
        assert result.fee >= 0 and result.vsize > 0
        assert result.ancestor_count == 1
        assert result.decoded == {"txid": TXID}

    def test_mempool_hit_without_decode(self, fake_rpc):
        rpc = fake_rpc({"getmempoolentry": MEMPOOL_ENTRY, "getrawtransaction": NO_TX})
        result = search_transaction(rpc, TXID)
        assert isinstance(result, MempoolHit)
        assert result.decoded is None

    def test_confirmed_hit(self, fake_rpc):
        rpc = fake_rpc(
            {
                "getmempoolentry": NOT_IN_MEMPOOL,
                "getrawtransaction": CONFIRMED_TX,
                "getblockheader": {"height": 849998},
                "getblockcount": 850000,
            }
        )
        result = search_transaction(rpc, TXID, now=1700000600)
        assert isinstance(result, ConfirmedHit)
        assert result.confirmations == 3
        assert result.confirmations >= 1
        assert result.block_height == 849998
        assert result.age == 600
        assert (result.inputs, result.outputs) == (1, 2)

    def test_confirmed_falls_back_to_node_confirmations(self, fake_rpc):
        rpc = fake_rpc(
            {
                "getmempoolentry": NOT_IN_MEMPOOL,
                "getrawtransaction": CONFIRMED_TX,
                "getblockheader": RpcError(-5, "Block not found"),
            }
        )
        result = search_transaction(rpc, TXID, now=1700000000)
        assert result.confirmations == 3
        assert result.block_height is None

    def test_reversed_hash_found(self, fake_rpc):
        def entry(txid):
            if txid == REVERSED:
                return MEMPOOL_ENTRY
            raise NOT_IN_MEMPOOL

        rpc = fake_rpc({"getmempoolentry": entry, "getrawtransaction": NO_TX})
        result = search_transaction(rpc, TXID)
        assert isinstance(result, MempoolHit)
        assert result.txid == REVERSED

    def test_not_found(self, fake_rpc):
        rpc = fake_rpc({"getmempoolentry": NOT_IN_MEMPOOL, "getrawtransaction": NO_TX})
        result = search_transaction(rpc, TXID)
        assert result == NotFound(TXID)
        assert rpc.methods_called() == ["getmempoolentry"] * 2 + ["getrawtransaction"] * 2

    def test_connection_failure_propagates(self, fake_rpc):
        rpc = fake_rpc({"getmempoolentry": RpcConnectionError("RPC connection failed")})
        with pytest.raises(RpcConnectionError):
            search_transaction(rpc, TXID)
