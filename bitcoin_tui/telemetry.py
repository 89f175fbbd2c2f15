import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from bitcoin_tui.errors import RpcError
from bitcoin_tui.services.rpc import RpcClient

logger = logging.getLogger(__name__)

RECENT_BLOCK_HISTORY = 72
SLOW_REFRESH_POLLS = 6
BLOCK_STATS_FIELDS = ["height", "txs", "total_size", "total_weight", "avgfeerate", "time"]


def as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _warnings(value: Any) -> str | None:
    # Older nodes send a string, newer ones a list.
    if isinstance(value, list):
        text = "; ".join(str(w) for w in value if w)
        return text or None
    if isinstance(value, str) and value:
        return value
    return None


def _dict(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


@dataclass(frozen=True)
class BlockchainInfo:
    chain: str | None = None
    blocks: int | None = None
    headers: int | None = None
    bestblockhash: str | None = None
    difficulty: float | None = None
    time: int | None = None
    mediantime: int | None = None
    verificationprogress: float | None = None
    initialblockdownload: bool | None = None
    size_on_disk: int | None = None
    pruned: bool | None = None
    warnings: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "BlockchainInfo":
        d = _dict(data)
        return cls(
            chain=as_str(d.get("chain")),
            blocks=as_int(d.get("blocks")),
            headers=as_int(d.get("headers")),
            bestblockhash=as_str(d.get("bestblockhash")),
            difficulty=as_float(d.get("difficulty")),
            time=as_int(d.get("time")),
            mediantime=as_int(d.get("mediantime")),
            verificationprogress=as_float(d.get("verificationprogress")),
            initialblockdownload=as_bool(d.get("initialblockdownload")),
            size_on_disk=as_int(d.get("size_on_disk")),
            pruned=as_bool(d.get("pruned")),
            warnings=_warnings(d.get("warnings")),
        )


@dataclass(frozen=True)
class NetworkInfo:
    version: int | None = None
    subversion: str | None = None
    protocolversion: int | None = None
    connections: int | None = None
    connections_in: int | None = None
    connections_out: int | None = None
    networkactive: bool | None = None
    relayfee: float | None = None
    reachable: tuple[str, ...] = ()
    localservicesnames: tuple[str, ...] = ()
    localaddresses: tuple[str, ...] = ()
    warnings: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "NetworkInfo":
        d = _dict(data)
        networks = d.get("networks") if isinstance(d.get("networks"), list) else []
        reachable = tuple(
            str(n.get("name")) for n in networks if isinstance(n, dict) and n.get("reachable")
        )
        services = d.get("localservicesnames") if isinstance(d.get("localservicesnames"), list) else []
        addresses = d.get("localaddresses") if isinstance(d.get("localaddresses"), list) else []
        return cls(
            version=as_int(d.get("version")),
            subversion=as_str(d.get("subversion")),
            protocolversion=as_int(d.get("protocolversion")),
            connections=as_int(d.get("connections")),
            connections_in=as_int(d.get("connections_in")),
            connections_out=as_int(d.get("connections_out")),
            networkactive=as_bool(d.get("networkactive")),
            relayfee=as_float(d.get("relayfee")),
            reachable=reachable,
            localservicesnames=tuple(str(s) for s in services),
            localaddresses=tuple(
                f"{a.get('address')}:{a.get('port')}" for a in addresses if isinstance(a, dict)
            ),
            warnings=_warnings(d.get("warnings")),
        )


@dataclass(frozen=True)
class MempoolInfo:
    loaded: bool | None = None
    size: int | None = None
    bytes: int | None = None
    usage: int | None = None
    total_fee: float | None = None
    maxmempool: int | None = None
    mempoolminfee: float | None = None
    minrelaytxfee: float | None = None
    unbroadcastcount: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "MempoolInfo":
        d = _dict(data)
        return cls(
            loaded=as_bool(d.get("loaded")),
            size=as_int(d.get("size")),
            bytes=as_int(d.get("bytes")),
            usage=as_int(d.get("usage")),
            total_fee=as_float(d.get("total_fee")),
            maxmempool=as_int(d.get("maxmempool")),
            mempoolminfee=as_float(d.get("mempoolminfee")),
            minrelaytxfee=as_float(d.get("minrelaytxfee")),
            unbroadcastcount=as_int(d.get("unbroadcastcount")),
        )


@dataclass(frozen=True)
class MiningInfo:
    blocks: int | None = None
    difficulty: float | None = None
    networkhashps: float | None = None
    pooledtx: int | None = None
    chain: str | None = None
    warnings: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "MiningInfo":
        d = _dict(data)
        return cls(
            blocks=as_int(d.get("blocks")),
            difficulty=as_float(d.get("difficulty")),
            networkhashps=as_float(d.get("networkhashps")),
            pooledtx=as_int(d.get("pooledtx")),
            chain=as_str(d.get("chain")),
            warnings=_warnings(d.get("warnings")),
        )


@dataclass(frozen=True)
class NetTotals:
    totalbytesrecv: int | None = None
    totalbytessent: int | None = None
    timemillis: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "NetTotals":
        d = _dict(data)
        return cls(
            totalbytesrecv=as_int(d.get("totalbytesrecv")),
            totalbytessent=as_int(d.get("totalbytessent")),
            timemillis=as_int(d.get("timemillis")),
        )


@dataclass(frozen=True)
class ChainTip:
    height: int | None = None
    hash: str | None = None
    branchlen: int | None = None
    status: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ChainTip":
        d = _dict(data)
        return cls(
            height=as_int(d.get("height")),
            hash=as_str(d.get("hash")),
            branchlen=as_int(d.get("branchlen")),
            status=as_str(d.get("status")),
        )


@dataclass(frozen=True)
class BlockStats:
    height: int
    txs: int | None = None
    total_size: int | None = None
    total_weight: int | None = None
    avgfeerate: int | None = None
    time: int | None = None
    pool: str | None = None

    @classmethod
    def from_json(cls, data: Any, pool: str | None = None) -> "BlockStats | None":
        d = _dict(data)
        height = as_int(d.get("height"))
        if height is None:
            return None
        return cls(
            height=height,
            txs=as_int(d.get("txs")),
            total_size=as_int(d.get("total_size")),
            total_weight=as_int(d.get("total_weight")),
            avgfeerate=as_int(d.get("avgfeerate")),
            time=as_int(d.get("time")),
            pool=pool,
        )


@dataclass
class CoreSnapshot:
    blockchain: BlockchainInfo | None = None
    network: NetworkInfo | None = None
    mempool: MempoolInfo | None = None
    peers: list[dict] | None = None
    nettotals: NetTotals | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class SlowSnapshot:
    mining: MiningInfo | None = None
    chaintips: list[ChainTip] | None = None
    errors: list[str] = field(default_factory=list)


def _fetch(rpc: RpcClient, method: str, errors: list[str]) -> Any:
    try:
        return rpc.call(method)
    except RpcError as e:
        logger.warning("%s failed: %s", method, e)
        errors.append(f"{method}: {e.message}")
        return None


def fetch_core(rpc: RpcClient) -> CoreSnapshot:
    """One poll of the fast-changing node state.

    A node error on one call leaves that part None; a connection failure
    aborts the whole poll.
    """
    snapshot = CoreSnapshot()
    data = _fetch(rpc, "getblockchaininfo", snapshot.errors)
    if data is not None:
        snapshot.blockchain = BlockchainInfo.from_json(data)
    data = _fetch(rpc, "getnetworkinfo", snapshot.errors)
    if data is not None:
        snapshot.network = NetworkInfo.from_json(data)
    data = _fetch(rpc, "getmempoolinfo", snapshot.errors)
    if data is not None:
        snapshot.mempool = MempoolInfo.from_json(data)
    data = _fetch(rpc, "getpeerinfo", snapshot.errors)
    if isinstance(data, list):
        snapshot.peers = [p for p in data if isinstance(p, dict)]
    data = _fetch(rpc, "getnettotals", snapshot.errors)
    if data is not None:
        snapshot.nettotals = NetTotals.from_json(data)
    return snapshot


def fetch_slow(rpc: RpcClient) -> SlowSnapshot:
    snapshot = SlowSnapshot()
    data = _fetch(rpc, "getmininginfo", snapshot.errors)
    if data is not None:
        snapshot.mining = MiningInfo.from_json(data)
    data = _fetch(rpc, "getchaintips", snapshot.errors)
    if isinstance(data, list):
        snapshot.chaintips = [ChainTip.from_json(t) for t in data]
    return snapshot


def extract_pool_name(coinbase_hex: str) -> str | None:
    """Best guess at the miner tag in a coinbase script.

    The last ``/Name/`` tag wins; otherwise the longest printable ASCII run of
    at least four characters.
    """
    try:
        data = bytes.fromhex(coinbase_hex)
    except ValueError:
        return None

    last = None
    i = 0
    while i < len(data):
        if data[i] == ord("/"):
            end = data.find(b"/", i + 1)
            if end != -1:
                name = data[i + 1:end]
                if name and all(0x20 <= b <= 0x7E for b in name):
                    last = name.decode("ascii")
                i = end + 1
                continue
        i += 1
    if last is not None:
        return last

    best = b""
    run_start = None
    for index, b in enumerate(data + b"\0"):
        if 0x20 <= b <= 0x7E:
            if run_start is None:
                run_start = index
        elif run_start is not None:
            if index - run_start > len(best):
                best = data[run_start:index]
            run_start = None
    if len(best) >= 4:
        return best.decode("ascii").strip()
    return None


def _block_pool(rpc: RpcClient, block_hash: str) -> str | None:
    block = rpc.getblock(block_hash, 1)
    txids = block.get("tx") if isinstance(block, dict) else None
    if not isinstance(txids, list) or not txids:
        return None
    tx = rpc.call("getrawtransaction", [txids[0], True, block_hash])
    vin = tx.get("vin") if isinstance(tx, dict) else None
    if not isinstance(vin, list) or not vin or not isinstance(vin[0], dict):
        return None
    coinbase = vin[0].get("coinbase")
    return extract_pool_name(coinbase) if isinstance(coinbase, str) else None


def fetch_block_stats(rpc: RpcClient, height: int) -> BlockStats | None:
    block_hash = rpc.getblockhash(height)
    stats = rpc.call("getblockstats", [block_hash, BLOCK_STATS_FIELDS])
    try:
        pool = _block_pool(rpc, block_hash)
    except RpcError as e:
        logger.debug("pool lookup for block %s failed: %s", height, e)
        pool = None
    return BlockStats.from_json(stats, pool)


def heights_to_fetch(tip: int, known: Sequence[BlockStats], history: int = RECENT_BLOCK_HISTORY) -> list[int]:
    """Heights missing from ``known`` so that it covers the last ``history`` blocks."""
    first = max(0, tip - history + 1)
    have = {b.height for b in known}
    return [h for h in range(tip, first - 1, -1) if h not in have]


def fetch_blocks(
    rpc: RpcClient, tip: int, known: Sequence[BlockStats], history: int = RECENT_BLOCK_HISTORY
) -> list[BlockStats]:
    """Extend ``known`` up to ``tip`` keeping ``history`` blocks, ordered by height.

    Blocks above the tip (after a reorg to a shorter chain) are dropped and
    refetched when they reappear. Connection failures propagate.
    """
    first = max(0, tip - history + 1)
    blocks = {b.height: b for b in known if first <= b.height <= tip}
    for height in heights_to_fetch(tip, list(blocks.values()), history):
        try:
            stats = fetch_block_stats(rpc, height)
        except RpcError as e:
            logger.warning("getblockstats %d failed: %s", height, e)
            continue
        if stats is not None:
            blocks[stats.height] = stats
    logger.debug("recent blocks: %d cached, tip %d", len(blocks), tip)
    return [blocks[h] for h in sorted(blocks)]


