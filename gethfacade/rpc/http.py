"""
HTTP JSON-RPC Transport

FastAPI application serving one JSON-RPC envelope per ``POST /`` plus the
``/health`` and ``/ready`` probes. Application failures are always reported
inside a 200 response; only the probes use other status codes.
"""

import time

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from ..backend.base import ReadBackend
from ..constants import FACADE_VERSION
from ..logger import get_logger
from .config import HTTPConfig
from .server import RPCError, RPCErrorCode, RPCResponse, RPCServer

logger = get_logger(__name__)

JSON_MEDIA_TYPE = "application/json"


def create_http_app(rpc_server: RPCServer, backend: ReadBackend, config: HTTPConfig = None) -> FastAPI:
    """
    Build the HTTP transport application.

    Args:
        rpc_server: Dispatcher shared with the WebSocket transport
        backend: Backend probed by ``/health`` and ``/ready``
        config: HTTP settings (CORS, body limit, dispatch deadline)
    """
    config = config or HTTPConfig()

    app = FastAPI(
        title="Geth Facade",
        description="Ethereum JSON-RPC facade (HTTP transport).",
        version=FACADE_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if config.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    def too_large() -> Response:
        error = RPCError(RPCErrorCode.PARSE_ERROR, "Parse error: request body too large")
        return Response(content=RPCResponse(error=error.to_dict()).to_json(), media_type=JSON_MEDIA_TYPE)

    @app.post("/")
    async def rpc_endpoint(request: Request):
        """JSON-RPC 2.0 endpoint"""
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > config.max_request_size:
            return too_large()

        body = await request.body()
        if len(body) > config.max_request_size:
            return too_large()

        # handle_request returns a JSON string; send it raw to avoid double-encoding
        result = await rpc_server.handle_request(body, timeout=config.timeout)
        return Response(content=result, media_type=JSON_MEDIA_TYPE)

    @app.get("/health")
    async def health():
        """Liveness: the backend answers ``block_number``."""
        try:
            await backend.block_number()
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "error": str(e), "timestamp": int(time.time())},
            )
        return {"status": "healthy", "timestamp": int(time.time())}

    @app.get("/ready")
    async def ready():
        """Readiness: the backend answers ``chain_id``."""
        try:
            chain_id = await backend.chain_id()
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "not ready", "error": str(e), "timestamp": int(time.time())},
            )
        return {"status": "ready", "chain_id": chain_id, "timestamp": int(time.time())}

    return app
