import logging
import re
import time
from dataclasses import dataclass

from bitcoin_tui.errors import BadArgument, RpcError
from bitcoin_tui.services.rpc import RpcClient
from bitcoin_tui.telemetry import as_float, as_int

logger = logging.getLogger(__name__)

_TXID = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class MempoolHit:
    txid: str
    fee: float | None = None
    vsize: int | None = None
    weight: int | None = None
    ancestor_count: int | None = None
    descendant_count: int | None = None
    time: int | None = None
    decoded: dict | None = None


@dataclass(frozen=True)
class ConfirmedHit:
    txid: str
    confirmations: int | None = None
    block_height: int | None = None
    block_hash: str | None = None
    block_time: int | None = None
    age: int | None = None
    vsize: int | None = None
    weight: int | None = None
    inputs: int | None = None
    outputs: int | None = None
    decoded: dict | None = None


@dataclass(frozen=True)
class NotFound:
    txid: str


SearchResult = MempoolHit | ConfirmedHit | NotFound


def txid_candidates(txid: str) -> list[str]:
    """The txid as typed, then byte-reversed, for hashes copied from other tools."""
    txid = txid.strip().lower()
    if not _TXID.match(txid):
        raise BadArgument("A txid is 64 hex characters")
    flipped = bytes.fromhex(txid)[::-1].hex()
    if flipped == txid:
        return [txid]
    return [txid, flipped]


def _lookup_mempool(rpc: RpcClient, txid: str) -> MempoolHit | None:
    try:
        entry = rpc.getmempoolentry(txid)
    except RpcError as e:
        logger.debug("getmempoolentry %s: %s", txid, e)
        return None
    if not isinstance(entry, dict):
        return None
    fees = entry.get("fees")
    fee = as_float(fees.get("base")) if isinstance(fees, dict) else as_float(entry.get("fee"))
    try:
        decoded = rpc.getrawtransaction(txid, True)
    except RpcError as e:
        logger.debug("decode of mempool tx %s failed: %s", txid, e)
        decoded = None
    return MempoolHit(
        txid=txid,
        fee=fee,
        vsize=as_int(entry.get("vsize")),
        weight=as_int(entry.get("weight")),
        ancestor_count=as_int(entry.get("ancestorcount")),
        descendant_count=as_int(entry.get("descendantcount")),
        time=as_int(entry.get("time")),
        decoded=decoded if isinstance(decoded, dict) else None,
    )


def _lookup_chain(rpc: RpcClient, txid: str, now: float) -> SearchResult | None:
    try:
        tx = rpc.getrawtransaction(txid, True)
    except RpcError as e:
        logger.debug("getrawtransaction %s: %s", txid, e)
        return None
    if not isinstance(tx, dict):
        return None
    block_hash = tx.get("blockhash")
    if not isinstance(block_hash, str):
        # Entered the mempool between the two lookups.
        return MempoolHit(
            txid=txid,
            vsize=as_int(tx.get("vsize")),
            weight=as_int(tx.get("weight")),
            decoded=tx,
        )

    confirmations = as_int(tx.get("confirmations"))
    height = None
    try:
        header = rpc.getblockheader(block_hash)
        height = as_int(header.get("height")) if isinstance(header, dict) else None
        tip = as_int(rpc.getblockcount())
        if height is not None and tip is not None:
            confirmations = tip - height + 1
    except RpcError as e:
        logger.debug("block lookup for %s failed: %s", txid, e)

    block_time = as_int(tx.get("blocktime"))
    age = max(0, int(now) - block_time) if block_time is not None else None
    vin = tx.get("vin")
    vout = tx.get("vout")
    return ConfirmedHit(
        txid=txid,
        confirmations=confirmations,
        block_height=height,
        block_hash=block_hash,
        block_time=block_time,
        age=age,
        vsize=as_int(tx.get("vsize")),
        weight=as_int(tx.get("weight")),
        inputs=len(vin) if isinstance(vin, list) else None,
        outputs=len(vout) if isinstance(vout, list) else None,
        decoded=tx,
    )


def search_transaction(rpc: RpcClient, txid: str, now: float | None = None) -> SearchResult:
    """Mempool first, then the chain (needs -txindex for old transactions).

    RpcError answers count as a miss; connection failures propagate.
    """
    candidates = txid_candidates(txid)
    if now is None:
        now = time.time()
    for candidate in candidates:
        hit = _lookup_mempool(rpc, candidate)
        if hit is not None:
            return hit
    for candidate in candidates:
        result = _lookup_chain(rpc, candidate, now)
        if result is not None:
            return result
    logger.info("transaction %s not found", candidates[0])
    return NotFound(candidates[0])
