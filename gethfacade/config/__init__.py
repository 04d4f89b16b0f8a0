"""
Geth Facade Configuration

Loads facade.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    FacadeConfig,
    NodeSectionConfig,
    BackendSectionConfig,
    load_config,
    parse_chain_id,
    parse_listen_address,
)

__all__ = [
    "FacadeConfig",
    "NodeSectionConfig",
    "BackendSectionConfig",
    "load_config",
    "parse_chain_id",
    "parse_listen_address",
]
