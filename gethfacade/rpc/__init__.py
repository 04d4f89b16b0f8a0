"""
Facade RPC Package

Provides the JSON-RPC 2.0 surface of the facade:
- Dispatcher with the eth_/net_/web3_ method catalog
- HTTP JSON-RPC transport
- WebSocket JSON-RPC transport (with subscriptions)
"""

from .config import HTTPConfig, ModulesConfig, RPCConfig, WebSocketConfig
from .server import Param, RPCError, RPCErrorCode, RPCModule, RPCRequest, RPCResponse, RPCServer, rpc_method
from .modules import EthModule, NetModule, Web3Module


def build_rpc_server(backend, modules: ModulesConfig = None) -> RPCServer:
    """Create a dispatcher with the enabled namespaces registered over ``backend``."""
    modules = modules or ModulesConfig()
    server = RPCServer()
    if modules.eth:
        server.register_module(EthModule(backend))
    if modules.net:
        server.register_module(NetModule(backend))
    if modules.web3:
        server.register_module(Web3Module(backend))
    return server


__all__ = [
    "RPCServer",
    "RPCConfig",
    "HTTPConfig",
    "WebSocketConfig",
    "ModulesConfig",
    "RPCError",
    "RPCErrorCode",
    "RPCModule",
    "RPCRequest",
    "RPCResponse",
    "Param",
    "rpc_method",
    "build_rpc_server",
]
