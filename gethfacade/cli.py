"""
Geth Facade CLI

Runs the facade over the in-memory development backend.

Usage:
    geth-facade [--chainid ID] [--http ADDR] [--ws ADDR] [--config FILE]
                [--log-level LEVEL] [--block-time SECONDS]

Settings are layered: built-in defaults, then the TOML file, then
environment variables (or `.env`), then command-line options.
"""

import asyncio
from pathlib import Path
from typing import Optional

import click

from .config.loader import FacadeConfig, VALID_LOG_LEVELS, load_config, parse_chain_id, parse_listen_address
from .constants import FACADE_CHAIN_ID, FACADE_HTTP_ADDR, FACADE_VERSION, FACADE_WS_ADDR
from .facade import FacadeServer
from .logger import configure_logging, get_logger


def _chain_id_option(ctx, param, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return parse_chain_id(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is neither 0x-prefixed hex nor decimal")


def _address_option(ctx, param, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        parse_listen_address(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    return value


def build_config(
    config_path: Optional[str] = None,
    chainid: Optional[int] = None,
    http: Optional[str] = None,
    ws: Optional[str] = None,
    log_level: Optional[str] = None,
    block_time: Optional[float] = None,
) -> FacadeConfig:
    """Resolve the effective configuration; command-line values win."""
    config = load_config(config_path)
    if chainid is not None:
        config.node.chain_id = chainid
    if http is not None:
        config.set_http_address(http)
    if ws is not None:
        config.set_ws_address(ws)
    if log_level is not None:
        config.node.log_level = log_level.upper()
    if block_time is not None:
        config.backend.block_time = block_time
    config.validate()
    return config


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=FACADE_VERSION, prog_name="geth-facade")
@click.option(
    "--chainid",
    callback=_chain_id_option,
    help=f"Chain id, 0x-prefixed hex or decimal (default: {FACADE_CHAIN_ID.default()})",
)
@click.option(
    "--http",
    callback=_address_option,
    help=f"HTTP JSON-RPC listen address (default: {FACADE_HTTP_ADDR.default()})",
)
@click.option(
    "--ws",
    callback=_address_option,
    help=f"WebSocket JSON-RPC listen address (default: {FACADE_WS_ADDR.default()})",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    help="TOML configuration file (default: ./facade.toml if present)",
)
@click.option(
    "--log-level",
    type=click.Choice(VALID_LOG_LEVELS, case_sensitive=False),
    help="Logging level (default: INFO)",
)
@click.option(
    "--block-time",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds between blocks sealed by the memory backend (default: 6)",
)
def main(
    chainid: Optional[int],
    http: Optional[str],
    ws: Optional[str],
    config_path: Optional[str],
    log_level: Optional[str],
    block_time: Optional[float],
):
    """Ethereum JSON-RPC facade over a pluggable backend.

    Examples:

        geth-facade

        geth-facade --chainid 0xaa36a7 --http 127.0.0.1:8545 --ws 127.0.0.1:8546
    """
    try:
        config = build_config(config_path, chainid, http, ws, log_level, block_time)
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    log_file = Path(config.node.log_file) if config.node.log_file else None
    configure_logging(config.node.log_level, log_file)
    logger = get_logger(__name__)
    logger.info(f"Starting geth-facade {FACADE_VERSION}")

    server = FacadeServer(config)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
