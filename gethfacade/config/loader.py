"""
Geth Facade TOML Configuration Loader

Loads facade.toml at startup with environment variable overrides.
Every section is a dataclass with ``from_dict``; the top-level
``FacadeConfig`` adds ``from_file``, ``apply_env`` and ``validate``.

Environment variable mapping:
    [node] chain_id          → FACADE_CHAIN_ID
    [node] log_level         → FACADE_LOG_LEVEL
    [backend] block_time     → FACADE_BLOCK_TIME
    [rpc.http] host:port     → FACADE_HTTP_ADDR    (e.g. ":8545")
    [rpc.websocket] host:port → FACADE_WS_ADDR     (e.g. "127.0.0.1:8546")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import DEFAULT_CHAIN_ID, MEMORY_BLOCK_TIME, env_value
from ..logger import get_logger
from ..rpc.config import RPCConfig

logger = get_logger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Host used when a listen address omits it (":8545")
ANY_HOST = "0.0.0.0"

DEFAULT_CONFIG_FILE = "facade.toml"


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_chain_id(value: Union[str, int]) -> int:
    """
    Parse a chain id given as ``0x``-prefixed hex or decimal.

    >>> parse_chain_id("0xaa36a7") == parse_chain_id("11155111") == 11155111
    True
    """
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text[2:], 16)
    return int(text, 10)


def parse_listen_address(addr: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` listen address.

    An empty host (``":8545"``) means all interfaces; IPv6 hosts may be
    bracketed (``"[::1]:8545"``).
    """
    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        raise ValueError(f"listen address must be host:port, got {addr!r}")
    if not port.isdigit():
        raise ValueError(f"invalid port in listen address {addr!r}")
    host = host.strip("[]") or ANY_HOST
    return host, int(port)


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class NodeSectionConfig:
    """[node] section."""
    chain_id: int = DEFAULT_CHAIN_ID
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeSectionConfig":
        return cls(
            chain_id=parse_chain_id(data.get("chain_id", DEFAULT_CHAIN_ID)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            log_file=data.get("log_file", ""),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := env_value("FACADE_CHAIN_ID"):
            self.chain_id = parse_chain_id(v)
        if v := env_value("FACADE_LOG_LEVEL"):
            self.log_level = v.upper()


@dataclass
class BackendSectionConfig:
    """[backend] section."""
    type: str = "memory"
    block_time: float = MEMORY_BLOCK_TIME

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackendSectionConfig":
        return cls(
            type=data.get("type", "memory"),
            block_time=float(data.get("block_time", MEMORY_BLOCK_TIME)),
        )

    def apply_env(self) -> None:
        if v := env_value("FACADE_BLOCK_TIME"):
            self.block_time = float(v)


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------

@dataclass
class FacadeConfig:
    """
    Complete facade configuration.

    Usage:
        config = FacadeConfig.from_file("facade.toml")
        config.validate()
    """
    node: NodeSectionConfig = field(default_factory=NodeSectionConfig)
    backend: BackendSectionConfig = field(default_factory=BackendSectionConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FacadeConfig":
        return cls(
            node=NodeSectionConfig.from_dict(data.get("node", {})),
            backend=BackendSectionConfig.from_dict(data.get("backend", {})),
            rpc=RPCConfig.from_dict(data.get("rpc", {})),
        )

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "FacadeConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults (plus environment
        overrides) are used.

        Args:
            config_path: Path to facade.toml

        Returns:
            FacadeConfig instance
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            raw = tomli.load(f)

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.node.apply_env()
        self.backend.apply_env()

        if v := env_value("FACADE_HTTP_ADDR"):
            self.set_http_address(v)
        if v := env_value("FACADE_WS_ADDR"):
            self.set_ws_address(v)

    def set_http_address(self, addr: str) -> None:
        self.rpc.http.host, self.rpc.http.port = parse_listen_address(addr)

    def set_ws_address(self, addr: str) -> None:
        self.rpc.websocket.host, self.rpc.websocket.port = parse_listen_address(addr)

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ValueError: on invalid config
        """
        if self.node.chain_id < 1:
            raise ValueError("chain_id must be >= 1")
        if self.node.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.node.log_level}")
        if self.backend.type != "memory":
            raise ValueError("Only the 'memory' backend is built in")
        if self.backend.block_time <= 0:
            raise ValueError("block_time must be > 0")
        for name, port in (("http", self.rpc.http.port), ("websocket", self.rpc.websocket.port)):
            if not 0 < port < 65536:
                raise ValueError(f"Invalid {name} port: {port}")
        if self.rpc.http.timeout <= 0 or self.rpc.websocket.timeout <= 0:
            raise ValueError("rpc timeout must be > 0")
        if self.rpc.websocket.max_connections < 1:
            raise ValueError("max_connections must be >= 1")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "node": {
                "chain_id": self.node.chain_id,
                "log_level": self.node.log_level,
            },
            "backend": {
                "type": self.backend.type,
                "block_time": self.backend.block_time,
            },
            "rpc": {
                "http": f"{self.rpc.http.host}:{self.rpc.http.port}",
                "websocket": f"{self.rpc.websocket.host}:{self.rpc.websocket.port}",
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> FacadeConfig:
    """
    Load facade configuration.

    Resolution order:
        1. Explicit *path* argument
        2. FACADE_CONFIG env var
        3. ./facade.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = env_value("FACADE_CONFIG")
    if path is None:
        if not Path(DEFAULT_CONFIG_FILE).exists():
            cfg = FacadeConfig()
            cfg.apply_env()
            return cfg
        path = DEFAULT_CONFIG_FILE

    return FacadeConfig.from_file(path)
