"""
Facade RPC Configuration
"""

from dataclasses import dataclass, field
from typing import List

from ..constants import DEFAULT_HTTP_PORT, DEFAULT_WS_PORT


@dataclass
class HTTPConfig:
    """HTTP RPC configuration."""

    # Enable HTTP RPC
    enabled: bool = True

    # Listen address
    host: str = "0.0.0.0"

    # Listen port
    port: int = DEFAULT_HTTP_PORT

    # Enable CORS
    cors_enabled: bool = True

    # CORS allowed origins
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Maximum request body size (bytes)
    max_request_size: int = 5 * 1024 * 1024  # 5MB

    # Per-request dispatch deadline (seconds)
    timeout: float = 30.0


@dataclass
class WebSocketConfig:
    """WebSocket RPC configuration."""

    # Enable WebSocket RPC
    enabled: bool = True

    # Listen address
    host: str = "0.0.0.0"

    # Listen port
    port: int = DEFAULT_WS_PORT

    # Maximum concurrent connections
    max_connections: int = 100

    # Enable subscriptions
    subscriptions_enabled: bool = True

    # Maximum subscriptions per connection
    max_subscriptions: int = 100

    # Per-request dispatch deadline (seconds)
    timeout: float = 30.0

    # Ping interval (seconds), handed to uvicorn
    ping_interval: float = 30.0


@dataclass
class ModulesConfig:
    """RPC modules configuration."""

    # eth_* namespace
    eth: bool = True

    # net_* namespace
    net: bool = True

    # web3_* namespace
    web3: bool = True


@dataclass
class RPCConfig:
    """RPC configuration."""

    # HTTP configuration
    http: HTTPConfig = field(default_factory=HTTPConfig)

    # WebSocket configuration
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)

    # Enabled modules
    modules: ModulesConfig = field(default_factory=ModulesConfig)

    @classmethod
    def from_dict(cls, config: dict) -> "RPCConfig":
        """
        Create from dictionary.

        Raises:
            ValueError: on a key no section defines
        """
        config = dict(config)
        http_dict = config.pop("http", {})
        websocket_dict = config.pop("websocket", {})
        modules_dict = config.pop("modules", {})

        try:
            return cls(
                **config,
                http=HTTPConfig(**http_dict),
                websocket=WebSocketConfig(**websocket_dict),
                modules=ModulesConfig(**modules_dict),
            )
        except TypeError as e:
            raise ValueError(f"[rpc]: {e}") from e
