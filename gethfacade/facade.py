"""
Facade Server

Wires a backend to the dispatcher and both transports, then runs the HTTP
and WebSocket listeners side by side on one event loop under uvicorn.
"""

import asyncio
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from .backend.base import ReadBackend
from .backend.memory import MemoryBackend
from .config.loader import FacadeConfig
from .logger import get_logger
from .rpc import build_rpc_server
from .rpc.http import create_http_app
from .rpc.websocket import WebSocketManager, create_ws_app

logger = get_logger(__name__)


class FacadeServer:
    """
    The running facade: one backend, one dispatcher, two listeners.

    Usage:
        server = FacadeServer(FacadeConfig())
        asyncio.run(server.run())
    """

    def __init__(self, config: Optional[FacadeConfig] = None, backend: Optional[ReadBackend] = None):
        self.config = config or FacadeConfig()
        self.backend = backend or MemoryBackend(
            chain_id=self.config.node.chain_id,
            block_time=self.config.backend.block_time,
        )

        self.rpc_server = build_rpc_server(self.backend, self.config.rpc.modules)
        self.ws_manager = WebSocketManager(self.rpc_server, self.backend, self.config.rpc.websocket)
        self.http_app = create_http_app(self.rpc_server, self.backend, self.config.rpc.http)
        self.ws_app = create_ws_app(self.ws_manager)

        self._servers: List[uvicorn.Server] = []

    def _make_server(self, app: FastAPI, host: str, port: int, **kwargs) -> uvicorn.Server:
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            **kwargs,
        )
        return uvicorn.Server(config)

    def build_servers(self) -> List[uvicorn.Server]:
        """Create the uvicorn servers for every enabled transport."""
        http = self.config.rpc.http
        ws = self.config.rpc.websocket

        servers = []
        if http.enabled:
            servers.append(self._make_server(self.http_app, http.host, http.port))
            logger.info(f"HTTP JSON-RPC on http://{http.host}:{http.port}")
        if ws.enabled:
            servers.append(self._make_server(
                self.ws_app, ws.host, ws.port,
                ws_ping_interval=ws.ping_interval,
            ))
            logger.info(f"WebSocket JSON-RPC on ws://{ws.host}:{ws.port}")
        return servers

    def shutdown(self) -> None:
        """Ask every listener to exit."""
        for server in self._servers:
            server.should_exit = True

    async def run(self) -> None:
        """
        Start the backend and both listeners; return once they have stopped.

        When one listener stops (signal or failure) the other is asked to
        exit as well. A listener that fails to bind makes uvicorn exit the
        process with a non-zero status.
        """
        self._servers = self.build_servers()
        if not self._servers:
            raise ValueError("Both HTTP and WebSocket transports are disabled")

        await self.backend.start()
        logger.info(f"Geth facade serving chain {self.config.node.chain_id}")

        tasks = [asyncio.create_task(server.serve()) for server in self._servers]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            self.shutdown()
            if pending:
                await asyncio.gather(*pending)
            for task in done:
                task.result()
        finally:
            await self.ws_manager.close_all()
            await self.backend.stop()
            logger.info("Geth facade stopped")
