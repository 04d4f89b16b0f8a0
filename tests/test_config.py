"""
Configuration loader, command line and server wiring tests.
"""

import asyncio
import logging
import logging.handlers
import textwrap

import pytest
from click.testing import CliRunner

from gethfacade import cli
from gethfacade.backend import MemoryBackend
from gethfacade.config import (
    BackendSectionConfig,
    FacadeConfig,
    NodeSectionConfig,
    load_config,
    parse_chain_id,
    parse_listen_address,
)
from gethfacade.facade import FacadeServer
from gethfacade.logger import TerminalSafeFormatter, configure_logging
from gethfacade.rpc import RPCConfig

FACADE_ENV_VARS = (
    "FACADE_CONFIG",
    "FACADE_CHAIN_ID",
    "FACADE_LOG_LEVEL",
    "FACADE_BLOCK_TIME",
    "FACADE_HTTP_ADDR",
    "FACADE_WS_ADDR",
)


# ===================================================================
# FIXTURES
# ===================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate every test from the caller's environment and working directory."""
    for var in FACADE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def sample_toml(tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text(textwrap.dedent("""\
        [node]
        chain_id = "0x5"
        log_level = "debug"

        [backend]
        type = "memory"
        block_time = 2

        [rpc.http]
        host = "127.0.0.1"
        port = 9545
        cors_origins = ["https://dapp.example"]
        max_request_size = 1024

        [rpc.websocket]
        port = 9546
        max_connections = 10
        max_subscriptions = 4

        [rpc.modules]
        web3 = false
    """))
    return path


# ===================================================================
# VALUE PARSERS
# ===================================================================

class TestParseChainId:
    def test_hex_and_decimal_agree(self):
        assert parse_chain_id("0xaa36a7") == parse_chain_id("11155111") == 11155111

    def test_uppercase_prefix(self):
        assert parse_chain_id("0X1") == 1

    def test_int_passthrough(self):
        assert parse_chain_id(42) == 42

    @pytest.mark.parametrize("value", ["sepolia", "0xzz", ""])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_chain_id(value)


class TestParseListenAddress:
    def test_empty_host_means_all_interfaces(self):
        assert parse_listen_address(":8545") == ("0.0.0.0", 8545)

    def test_host_and_port(self):
        assert parse_listen_address("127.0.0.1:9000") == ("127.0.0.1", 9000)

    def test_bracketed_ipv6(self):
        assert parse_listen_address("[::1]:8546") == ("::1", 8546)

    @pytest.mark.parametrize("value", ["localhost", "host:", "host:http", "8545"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_listen_address(value)


# ===================================================================
# SECTIONS
# ===================================================================

class TestNodeSectionConfig:
    def test_defaults(self):
        cfg = NodeSectionConfig()
        assert cfg.chain_id == 11155111
        assert cfg.log_level == "INFO"

    def test_from_dict(self):
        cfg = NodeSectionConfig.from_dict({"chain_id": 1, "log_level": "warning"})
        assert cfg.chain_id == 1
        assert cfg.log_level == "WARNING"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("FACADE_CHAIN_ID", "0x2a")
        monkeypatch.setenv("FACADE_LOG_LEVEL", "error")
        cfg = NodeSectionConfig()
        cfg.apply_env()
        assert cfg.chain_id == 42
        assert cfg.log_level == "ERROR"


class TestBackendSectionConfig:
    def test_defaults(self):
        cfg = BackendSectionConfig()
        assert cfg.type == "memory"
        assert cfg.block_time == 6.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("FACADE_BLOCK_TIME", "0.25")
        cfg = BackendSectionConfig.from_dict({"block_time": 3})
        cfg.apply_env()
        assert cfg.block_time == 0.25


class TestRPCConfig:
    def test_defaults(self):
        cfg = RPCConfig()
        assert cfg.http.port == 8545
        assert cfg.websocket.port == 8546
        assert cfg.http.cors_origins == ["*"]
        assert cfg.modules.eth and cfg.modules.net and cfg.modules.web3

    def test_from_dict_does_not_mutate_input(self):
        raw = {"http": {"port": 1}, "modules": {"net": False}}
        cfg = RPCConfig.from_dict(raw)
        assert cfg.http.port == 1
        assert cfg.modules.net is False
        assert raw == {"http": {"port": 1}, "modules": {"net": False}}

    @pytest.mark.parametrize("raw", [
        {"bogus": 1},
        {"http": {"bogus": 1}},
        {"websocket": {"bogus": 1}},
    ])
    def test_unknown_key_is_value_error(self, raw):
        with pytest.raises(ValueError, match="bogus"):
            RPCConfig.from_dict(raw)


# ===================================================================
# FACADE CONFIG
# ===================================================================

class TestFacadeConfig:
    def test_from_file(self, sample_toml):
        cfg = FacadeConfig.from_file(sample_toml)
        assert cfg.node.chain_id == 5
        assert cfg.node.log_level == "DEBUG"
        assert cfg.backend.block_time == 2.0
        assert cfg.rpc.http.host == "127.0.0.1"
        assert cfg.rpc.http.port == 9545
        assert cfg.rpc.http.cors_origins == ["https://dapp.example"]
        assert cfg.rpc.http.max_request_size == 1024
        assert cfg.rpc.websocket.port == 9546
        assert cfg.rpc.websocket.max_connections == 10
        assert cfg.rpc.websocket.max_subscriptions == 4
        assert cfg.rpc.modules.web3 is False
        assert cfg.validate()

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = FacadeConfig.from_file(tmp_path / "absent.toml")
        assert cfg.node.chain_id == 11155111
        assert cfg.rpc.http.port == 8545

    def test_env_wins_over_file(self, sample_toml, monkeypatch):
        monkeypatch.setenv("FACADE_CHAIN_ID", "7")
        monkeypatch.setenv("FACADE_HTTP_ADDR", ":18545")
        monkeypatch.setenv("FACADE_WS_ADDR", "10.0.0.1:18546")
        cfg = FacadeConfig.from_file(sample_toml)
        assert cfg.node.chain_id == 7
        assert (cfg.rpc.http.host, cfg.rpc.http.port) == ("0.0.0.0", 18545)
        assert (cfg.rpc.websocket.host, cfg.rpc.websocket.port) == ("10.0.0.1", 18546)

    def test_bad_env_address(self, monkeypatch):
        monkeypatch.setenv("FACADE_HTTP_ADDR", "nowhere")
        with pytest.raises(ValueError):
            FacadeConfig().apply_env()

    @pytest.mark.parametrize("mutate, message", [
        (lambda c: setattr(c.node, "chain_id", 0), "chain_id"),
        (lambda c: setattr(c.node, "log_level", "LOUD"), "log_level"),
        (lambda c: setattr(c.backend, "type", "geth"), "memory"),
        (lambda c: setattr(c.backend, "block_time", 0), "block_time"),
        (lambda c: setattr(c.rpc.http, "port", 70000), "http port"),
        (lambda c: setattr(c.rpc.websocket, "port", 0), "websocket port"),
        (lambda c: setattr(c.rpc.http, "timeout", 0), "timeout"),
        (lambda c: setattr(c.rpc.websocket, "max_connections", 0), "max_connections"),
    ])
    def test_validate_rejects(self, mutate, message):
        cfg = FacadeConfig()
        mutate(cfg)
        with pytest.raises(ValueError, match=message):
            cfg.validate()

    def test_to_dict(self):
        cfg = FacadeConfig()
        cfg.set_http_address("127.0.0.1:1")
        d = cfg.to_dict()
        assert d["node"]["chain_id"] == 11155111
        assert d["rpc"]["http"] == "127.0.0.1:1"
        assert d["rpc"]["websocket"] == "0.0.0.0:8546"


class TestLoadConfig:
    def test_defaults_without_file(self):
        cfg = load_config()
        assert cfg.node.chain_id == 11155111

    def test_explicit_path(self, sample_toml):
        assert load_config(str(sample_toml)).node.chain_id == 5

    def test_env_path(self, sample_toml, monkeypatch):
        monkeypatch.setenv("FACADE_CONFIG", str(sample_toml))
        assert load_config().node.chain_id == 5

    def test_default_file_in_cwd(self, tmp_path):
        (tmp_path / "facade.toml").write_text("[node]\nchain_id = 99\n")
        assert load_config().node.chain_id == 99

    def test_env_applies_without_file(self, monkeypatch):
        monkeypatch.setenv("FACADE_CHAIN_ID", "0x1")
        assert load_config().node.chain_id == 1


# ===================================================================
# COMMAND LINE
# ===================================================================

class FakeServer:
    instances = []

    def __init__(self, config):
        self.config = config
        self.ran = False
        FakeServer.instances.append(self)

    async def run(self):
        self.ran = True


@pytest.fixture
def fake_server(monkeypatch):
    FakeServer.instances = []
    monkeypatch.setattr(cli, "FacadeServer", FakeServer)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return FakeServer


class TestCLI:
    def test_help(self):
        result = CliRunner().invoke(cli.main, ["--help"])
        assert result.exit_code == 0
        for option in ("--chainid", "--http", "--ws", "--config", "--log-level", "--block-time"):
            assert option in result.output

    def test_version(self):
        result = CliRunner().invoke(cli.main, ["--version"])
        assert result.exit_code == 0
        assert "0.2.0" in result.output

    def test_runs_with_defaults(self, fake_server):
        result = CliRunner().invoke(cli.main, [])
        assert result.exit_code == 0, result.output
        server = fake_server.instances[0]
        assert server.ran
        assert server.config.node.chain_id == 11155111
        assert server.config.rpc.http.port == 8545
        assert server.config.rpc.websocket.port == 8546

    def test_options_override(self, fake_server, sample_toml):
        result = CliRunner().invoke(cli.main, [
            "--config", str(sample_toml),
            "--chainid", "0xaa36a7",
            "--http", "127.0.0.1:7545",
            "--ws", ":7546",
            "--log-level", "warning",
            "--block-time", "0.5",
        ])
        assert result.exit_code == 0, result.output
        cfg = fake_server.instances[0].config
        assert cfg.node.chain_id == 11155111
        assert (cfg.rpc.http.host, cfg.rpc.http.port) == ("127.0.0.1", 7545)
        assert (cfg.rpc.websocket.host, cfg.rpc.websocket.port) == ("0.0.0.0", 7546)
        assert cfg.node.log_level == "WARNING"
        assert cfg.backend.block_time == 0.5
        assert cfg.rpc.websocket.max_connections == 10

    @pytest.mark.parametrize("args", [
        ["--chainid", "sepolia"],
        ["--http", "8545"],
        ["--ws", "host:port"],
        ["--log-level", "LOUD"],
        ["--block-time", "0"],
    ])
    def test_bad_options(self, fake_server, args):
        result = CliRunner().invoke(cli.main, args)
        assert result.exit_code == 2
        assert fake_server.instances == []

    def test_invalid_config_file(self, fake_server, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("[node]\nchain_id = 0\n")
        result = CliRunner().invoke(cli.main, ["--config", str(bad)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_unknown_rpc_key_is_clean_error(self, fake_server, tmp_path):
        bad = tmp_path / "bad.toml"
        bad.write_text("[rpc.http]\nbogus = 1\n")
        result = CliRunner().invoke(cli.main, ["--config", str(bad)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert fake_server.instances == []

    def test_cli_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("FACADE_CHAIN_ID", "5")
        assert cli.build_config(chainid=7).node.chain_id == 7
        assert cli.build_config().node.chain_id == 5


# ===================================================================
# SERVER WIRING
# ===================================================================

class FakeListener:
    def __init__(self):
        self.should_exit = False
        self.served = False

    async def serve(self):
        self.served = True


class TestFacadeServer:
    def test_default_backend_follows_config(self):
        cfg = FacadeConfig()
        cfg.node.chain_id = 1337
        server = FacadeServer(cfg)
        assert isinstance(server.backend, MemoryBackend)
        assert asyncio.run(server.backend.chain_id()) == 1337

    def test_build_servers(self):
        cfg = FacadeConfig()
        cfg.set_http_address("127.0.0.1:18545")
        cfg.set_ws_address("127.0.0.1:18546")
        servers = FacadeServer(cfg).build_servers()
        assert [(s.config.host, s.config.port) for s in servers] == [
            ("127.0.0.1", 18545),
            ("127.0.0.1", 18546),
        ]

    def test_disabled_transport_skipped(self):
        cfg = FacadeConfig()
        cfg.rpc.http.enabled = False
        assert len(FacadeServer(cfg).build_servers()) == 1

    def test_modules_config_applied(self):
        cfg = FacadeConfig()
        cfg.rpc.modules.web3 = False
        server = FacadeServer(cfg)
        assert not server.rpc_server.has_method("web3_clientVersion")
        assert server.rpc_server.has_method("eth_chainId")

    @pytest.mark.asyncio
    async def test_run_without_transports(self):
        cfg = FacadeConfig()
        cfg.rpc.http.enabled = False
        cfg.rpc.websocket.enabled = False
        with pytest.raises(ValueError):
            await FacadeServer(cfg).run()

    @pytest.mark.asyncio
    async def test_run_lifecycle(self, monkeypatch):
        backend = MemoryBackend(block_time=60)
        server = FacadeServer(FacadeConfig(), backend=backend)
        listeners = [FakeListener(), FakeListener()]
        monkeypatch.setattr(server, "build_servers", lambda: listeners)

        await server.run()
        assert all(listener.served for listener in listeners)
        assert all(listener.should_exit for listener in listeners)
        assert not backend.running


# ===================================================================
# LOGGING
# ===================================================================

class TestTerminalSafeFormatter:
    def test_strips_ansi_and_control_chars(self):
        assert TerminalSafeFormatter.sanitize("\x1b[31mred\x1b[0m\r\x07ok") == "redok"

    def test_keeps_tabs_and_newlines(self):
        assert TerminalSafeFormatter.sanitize("a\tb\nc") == "a\tb\nc"

    def test_format_sanitizes_record(self):
        formatter = TerminalSafeFormatter(fmt="%(message)s")
        record = logging.LogRecord("t", logging.INFO, "", 0, "method=\x1b[2Jeth_chainId", (), None)
        assert formatter.format(record) == "method=eth_chainId"


class TestConfigureLogging:
    def test_reconfigure_closes_previous_file_handler(self, tmp_path):
        configure_logging("INFO", tmp_path / "first.log")
        first = [h for h in logging.getLogger().handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(first) == 1
        assert first[0].stream is not None

        configure_logging("INFO", tmp_path / "second.log")
        assert first[0].stream is None
        assert first[0] not in logging.getLogger().handlers

        configure_logging("INFO")
