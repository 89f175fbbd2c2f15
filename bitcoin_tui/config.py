import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_TIMEOUT = 10.0
DEFAULT_ZMQ_HOST = "127.0.0.1"

NETWORKS = ("main", "test", "testnet4", "regtest", "signet")

DEFAULT_PORTS: dict[str, int] = {
    "main": 8332,
    "test": 18332,
    "testnet4": 48332,
    "regtest": 18443,
    "signet": 38332,
}

# Data directory subfolder per network; mainnet lives at the root.
NETWORK_SUBDIRS: dict[str, str | None] = {
    "main": None,
    "test": "testnet3",
    "testnet4": "testnet4",
    "regtest": "regtest",
    "signet": "signet",
}


def default_datadir() -> Path:
    return Path.home() / ".bitcoin"


@dataclass(frozen=True)
class Credential:
    user: str | None = None
    password: str | None = None
    cookie_path: Path | None = None

    @property
    def uses_cookie(self) -> bool:
        return self.user is None

    def auth(self) -> tuple[str, str]:
        """Return (user, password), reading the cookie file on every call."""
        if not self.uses_cookie:
            return self.user or "", self.password or ""
        if self.cookie_path is None:
            raise FileNotFoundError("no RPC credentials and no cookie file configured")
        contents = self.cookie_path.read_text().strip()
        user, _, password = contents.partition(":")
        return user, password

    def describe(self) -> str:
        if self.uses_cookie:
            return f"cookie {self.cookie_path}"
        return f"user {self.user}"


@dataclass(frozen=True)
class ConnectionConfig:
    host: str = "127.0.0.1"
    port: int = 8332
    credential: Credential = field(default_factory=Credential)
    network: str = "main"
    poll_interval: float = DEFAULT_POLL_INTERVAL
    timeout: float = DEFAULT_TIMEOUT
    zmq_address: str | None = None

    @property
    def rpc_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def zmq_enabled(self) -> bool:
        return self.zmq_address is not None


def read_conf(path: Path, network: str | None = None) -> dict[str, str]:
    """Parse bitcoin.conf; keys inside [section] blocks only apply to that network.

    When ``network`` is None the network is taken from the top-level flags
    (``testnet=1``, ``regtest=1``, ...) in the file itself.
    """
    if not path.exists():
        return {}
    top: dict[str, str] = {}
    sections: dict[str, dict[str, str]] = {}
    current = top
    for line in path.read_text(errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = sections.setdefault(line[1:-1].strip().lower(), {})
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().lower()
        value = value.split("#", 1)[0].strip()
        current.setdefault(key, value)
    if network is None:
        network = network_from_flags(top) or "main"
    merged = dict(top)
    merged.update(sections.get(network, {}))
    return merged


def network_from_flags(values: dict[str, str]) -> str | None:
    flags = {
        "testnet": "test",
        "testnet4": "testnet4",
        "regtest": "regtest",
        "signet": "signet",
    }
    for key, network in flags.items():
        if values.get(key) == "1":
            return network
    chain = values.get("chain")
    if chain in NETWORKS:
        return chain
    return None


def port_from_zmq_url(url: str | None) -> int | None:
    if not url:
        return None
    try:
        return urlparse(url).port
    except ValueError:
        return None


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("ignoring non-numeric %s=%r", name, value)
        return None


def load_config(args) -> ConnectionConfig:
    """Build the connection config from parsed flags, environment and bitcoin.conf."""
    datadir_value = args.datadir or os.environ.get("BITCOIN_DATADIR")
    datadir = Path(datadir_value).expanduser() if datadir_value else default_datadir()
    conf_value = args.conf or os.environ.get("BITCOIN_CONF")
    conf_path = Path(conf_value).expanduser() if conf_value else datadir / "bitcoin.conf"

    network = args.network
    conf = read_conf(conf_path, network)
    if network is None:
        network = network_from_flags(conf) or "main"

    host = args.host or os.environ.get("BITCOIN_RPC_HOST") or conf.get("rpcconnect") or "127.0.0.1"

    port = args.port or _env_int("BITCOIN_RPC_PORT")
    if port is None and conf.get("rpcport", "").isdigit():
        port = int(conf["rpcport"])
    if port is None:
        port = DEFAULT_PORTS[network]

    user = args.rpcuser or os.environ.get("BITCOIN_RPC_USER") or conf.get("rpcuser")
    password = args.rpcpassword or os.environ.get("BITCOIN_RPC_PASSWORD") or conf.get("rpcpassword")

    cookie_value = args.rpccookiefile or os.environ.get("BITCOIN_RPC_COOKIE") or conf.get("rpccookiefile")
    network_dir = datadir
    subdir = NETWORK_SUBDIRS[network]
    if subdir:
        network_dir = datadir / subdir
    if cookie_value:
        cookie_path = Path(cookie_value).expanduser()
        if not cookie_path.is_absolute():
            cookie_path = network_dir / cookie_path
    else:
        cookie_path = network_dir / ".cookie"

    credential = Credential(user=user, password=password, cookie_path=cookie_path)
    if user is None:
        credential = Credential(cookie_path=cookie_path)

    zmq_port = (
        args.zmqport
        or _env_int("BITCOIN_ZMQ_PORT")
        or port_from_zmq_url(conf.get("zmqpubhashtx"))
        or port_from_zmq_url(conf.get("zmqpubhashblock"))
    )
    zmq_address = f"tcp://{args.zmqhost or DEFAULT_ZMQ_HOST}:{zmq_port}" if zmq_port else None

    config = ConnectionConfig(
        host=host,
        port=port,
        credential=credential,
        network=network,
        poll_interval=float(args.interval),
        timeout=float(args.timeout),
        zmq_address=zmq_address,
    )
    logger.info(
        "config: rpc=%s network=%s auth=%s zmq=%s interval=%ss",
        config.rpc_url,
        config.network,
        credential.describe(),
        zmq_address,
        config.poll_interval,
    )
    return config
