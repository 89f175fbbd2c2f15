import logging
from pathlib import Path

import pytest

from bitcoin_tui.__main__ import build_parser, main
from bitcoin_tui.config import load_config, network_from_flags, port_from_zmq_url, read_conf
from bitcoin_tui.logsetup import resolve_level

ENV_VARS = [
    "BITCOIN_DATADIR",
    "BITCOIN_CONF",
    "BITCOIN_RPC_HOST",
    "BITCOIN_RPC_PORT",
    "BITCOIN_RPC_USER",
    "BITCOIN_RPC_PASSWORD",
    "BITCOIN_RPC_COOKIE",
    "BITCOIN_ZMQ_PORT",
    "BITCOIN_TUI_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def config_for(datadir, *flags):
    return load_config(build_parser().parse_args(["--datadir", str(datadir), *flags]))


class TestReadConf:
    def test_sections_apply_to_their_network(self, tmp_path):
        conf = tmp_path / "bitcoin.conf"
        conf.write_text(
            "# comment\nrpcuser=top\nserver=1\n\n[test]\nrpcport=19999\nrpcuser=testuser\n[main]\nrpcport=8000\n"
        )
        assert read_conf(conf, "test")["rpcuser"] == "testuser"
        assert read_conf(conf, "test")["rpcport"] == "19999"
        assert read_conf(conf, "main")["rpcport"] == "8000"
        assert read_conf(conf, "regtest") == {"rpcuser": "top", "server": "1"}

    def test_network_from_file_flags(self, tmp_path):
        conf = tmp_path / "bitcoin.conf"
        conf.write_text("regtest=1\n[regtest]\nrpcport=1234\n")
        assert read_conf(conf)["rpcport"] == "1234"

    def test_missing_file(self, tmp_path):
        assert read_conf(tmp_path / "nope.conf") == {}

    def test_network_flags(self):
        assert network_from_flags({"testnet": "1"}) == "test"
        assert network_from_flags({"chain": "signet"}) == "signet"
        assert network_from_flags({"testnet": "0"}) is None

    def test_zmq_port_from_url(self):
        assert port_from_zmq_url("tcp://127.0.0.1:28332") == 28332
        assert port_from_zmq_url("") is None
        assert port_from_zmq_url("tcp://127.0.0.1") is None


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = config_for(tmp_path)
        assert config.rpc_url == "http://127.0.0.1:8332"
        assert config.network == "main"
        assert config.credential.uses_cookie
        assert config.credential.cookie_path == tmp_path / ".cookie"
        assert config.poll_interval == 5.0
        assert config.timeout == 10.0
        assert not config.zmq_enabled

    def test_network_flag_picks_port_and_cookie_dir(self, tmp_path):
        config = config_for(tmp_path, "--testnet4")
        assert config.port == 48332
        assert config.credential.cookie_path == tmp_path / "testnet4" / ".cookie"
        config = config_for(tmp_path, "--testnet")
        assert config.credential.cookie_path == tmp_path / "testnet3" / ".cookie"

    def test_flag_beats_env_beats_conf(self, tmp_path, monkeypatch):
        (tmp_path / "bitcoin.conf").write_text("rpcport=1111\nrpcuser=confuser\nrpcpassword=confpw\n")
        assert config_for(tmp_path).port == 1111
        monkeypatch.setenv("BITCOIN_RPC_PORT", "2222")
        assert config_for(tmp_path).port == 2222
        assert config_for(tmp_path, "--port", "3333").port == 3333
        config = config_for(tmp_path)
        assert (config.credential.user, config.credential.password) == ("confuser", "confpw")
        assert not config.credential.uses_cookie

    def test_zmq_from_conf(self, tmp_path):
        (tmp_path / "bitcoin.conf").write_text("zmqpubhashtx=tcp://127.0.0.1:28332\n")
        config = config_for(tmp_path)
        assert config.zmq_address == "tcp://127.0.0.1:28332"
        config = config_for(tmp_path, "--zmqport", "29000", "--zmqhost", "10.0.0.5")
        assert config.zmq_address == "tcp://10.0.0.5:29000"

    def test_relative_cookie_file(self, tmp_path):
        config = config_for(tmp_path, "--regtest", "--rpccookiefile", "auth/.cookie")
        assert config.credential.cookie_path == tmp_path / "regtest" / "auth" / ".cookie"
        assert config.port == 18443


class TestCommandLine:
    def test_networks_exclusive(self):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--testnet", "--regtest"])
        assert exc.value.code == 2

    def test_interval_must_be_positive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--interval", "0"])

    def test_unreachable_node_exits_1(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr("bitcoin_tui.__main__.setup_logging", lambda debug, log_file: Path(log_file))
        cookie = tmp_path / ".cookie"
        cookie.write_text("__cookie__:x")
        code = main(
            [
                "--datadir",
                str(tmp_path),
                "--port",
                "1",
                "--timeout",
                "1",
                "--log-file",
                str(tmp_path / "tui.log"),
            ]
        )
        assert code == 1
        assert "cannot reach http://127.0.0.1:1" in capsys.readouterr().err

    def test_log_level(self, monkeypatch):
        assert resolve_level(debug=True) == logging.DEBUG
        assert resolve_level() == logging.WARNING
        monkeypatch.setenv("BITCOIN_TUI_LOG_LEVEL", "info")
        assert resolve_level() == logging.INFO
        monkeypatch.setenv("BITCOIN_TUI_LOG_LEVEL", "loud")
        assert resolve_level() == logging.WARNING
