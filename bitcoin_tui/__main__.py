import argparse
import logging
import sys

from bitcoin_tui import __version__
from bitcoin_tui.config import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, load_config
from bitcoin_tui.errors import RpcConnectionError, RpcError, describe_error
from bitcoin_tui.logsetup import setup_logging
from bitcoin_tui.services.rpc import RpcClient

logger = logging.getLogger(__name__)


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bitcoin-tui",
        description="Terminal dashboard and RPC console for a Bitcoin Core node.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    rpc = parser.add_argument_group("RPC connection")
    rpc.add_argument("--host", help="RPC host (default 127.0.0.1 or rpcconnect)")
    rpc.add_argument("--port", type=int, help="RPC port (default depends on the network)")
    rpc.add_argument("--rpcuser", help="RPC user name")
    rpc.add_argument("--rpcpassword", help="RPC password")
    rpc.add_argument("--rpccookiefile", help="cookie file (default <datadir>/[network]/.cookie)")
    rpc.add_argument("--datadir", help="Bitcoin Core data directory (default ~/.bitcoin)")
    rpc.add_argument("--conf", help="bitcoin.conf path (default <datadir>/bitcoin.conf)")
    rpc.add_argument("--timeout", type=positive_float, default=DEFAULT_TIMEOUT, help="RPC timeout in seconds")

    network = rpc.add_mutually_exclusive_group()
    network.add_argument("--testnet", dest="network", action="store_const", const="test", help="use testnet3")
    network.add_argument("--testnet4", dest="network", action="store_const", const="testnet4", help="use testnet4")
    network.add_argument("--regtest", dest="network", action="store_const", const="regtest", help="use regtest")
    network.add_argument("--signet", dest="network", action="store_const", const="signet", help="use signet")

    zmq = parser.add_argument_group("ZMQ notifications")
    zmq.add_argument("--zmqhost", help="ZMQ publisher host (default 127.0.0.1)")
    zmq.add_argument("--zmqport", type=int, help="ZMQ port for hashtx/hashblock")

    ui = parser.add_argument_group("display")
    ui.add_argument(
        "--interval",
        type=positive_float,
        default=DEFAULT_POLL_INTERVAL,
        help="seconds between dashboard refreshes (default 5)",
    )
    ui.add_argument("--debug", action="store_true", help="log at DEBUG level")
    ui.add_argument("--log-file", help="log file (default ~/.bitcoin-tui/bitcoin-tui.log)")
    return parser


def probe(rpc: RpcClient) -> None:
    """Fail fast when the node cannot be reached at all."""
    try:
        rpc.getblockchaininfo()
    except RpcError as e:
        # Reachable but busy (warming up, reindexing); the dashboard shows it.
        logger.warning("node answered the probe with %s", e)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log_path = setup_logging(args.debug, args.log_file)
    logger.info("bitcoin-tui %s starting, logging to %s", __version__, log_path)

    config = load_config(args)
    rpc = RpcClient(config)
    try:
        probe(rpc)
    except RpcConnectionError as e:
        logger.error("startup probe failed: %s", e)
        print(f"bitcoin-tui: cannot reach {config.rpc_url}: {describe_error(e)}", file=sys.stderr)
        print(f"  credentials: {config.credential.describe()}", file=sys.stderr)
        return 1

    from bitcoin_tui.app import run

    run(config)
    logger.info("bitcoin-tui exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
