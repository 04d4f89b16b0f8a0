"""
WebSocket JSON-RPC 2.0 Transport with Subscriptions

Provides real-time event streaming:
  - eth_subscribe / eth_unsubscribe (Ethereum-compatible)
  - newHeads              : new block headers
  - newPendingTransactions: pending transaction hashes
  - logs                  : filtered event logs

Each connection is served by a ``WebSocketSession``:
  - one reader loop, strictly sequential, so RPC responses keep request order
  - one writer task draining an outbound queue; it is the only thing that
    touches the socket for sending
  - one forwarder task per subscription, turning backend stream items into
    ``eth_subscription`` notifications

Subscription stop handles are released exactly once, whichever comes first
of unsubscribe, end of the backend stream or connection teardown.

Connection management:
  - Max connections enforced (close code 1013 before accept)
  - Per-connection subscription limits
"""

from __future__ import annotations

import asyncio
import itertools
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Union

from fastapi import FastAPI, WebSocket
from starlette.websockets import WebSocketDisconnect

from ..backend.base import ReadBackend, StopHandle, SubscriptionBackend
from ..constants import FACADE_VERSION, JSONRPC_VERSION, SUBSCRIPTION_METHOD
from ..exceptions import FacadeException, HexDecodeError, SubscriptionError, UnsupportedBlockTagError
from ..logger import get_logger
from .config import WebSocketConfig
from .encoding import encode_data, encode_header, encode_log, to_filter_query
from .server import RPCError, RPCErrorCode, RPCRequest, RPCResponse, RPCServer, parse_request

logger = get_logger(__name__)

# WebSocket close code "Try Again Later"
CLOSE_TRY_AGAIN_LATER = 1013

SendFn = Callable[[str], Awaitable[None]]
ReceiveFn = Callable[[], Awaitable[Union[str, bytes]]]


# ---------------------------------------------------------------------------
# Subscription types
# ---------------------------------------------------------------------------

class SubscriptionType(str, Enum):
    """Supported subscription channels."""
    NEW_HEADS = "newHeads"
    NEW_PENDING_TRANSACTIONS = "newPendingTransactions"
    LOGS = "logs"


# Notification payload encoders per channel
_PAYLOAD_ENCODERS: Dict[SubscriptionType, Callable[[Any], Any]] = {
    SubscriptionType.NEW_HEADS: encode_header,
    SubscriptionType.NEW_PENDING_TRANSACTIONS: encode_data,
    SubscriptionType.LOGS: encode_log,
}


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass
class Subscription:
    """A single subscription held by a session."""
    id: str
    sub_type: SubscriptionType
    stop: StopHandle
    task: Optional[asyncio.Task] = None
    created_at: float = field(default_factory=time.time)
    released: bool = False

    def release(self) -> bool:
        """Invoke the backend stop handle; only the first call has an effect."""
        if self.released:
            return False
        self.released = True
        self.stop()
        return True


# ---------------------------------------------------------------------------
# Per-connection session
# ---------------------------------------------------------------------------

class WebSocketSession:
    """
    State machine for one WebSocket connection.

    Transport-agnostic: the session is handed a ``send`` coroutine function
    and is fed raw frames through :meth:`handle_message` (or :meth:`serve`).
    """

    def __init__(
        self,
        rpc_server: RPCServer,
        backend: ReadBackend,
        send: SendFn,
        max_subscriptions: int = 100,
        subscriptions_enabled: bool = True,
        timeout: Optional[float] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or uuid.uuid4().hex[:16]
        self.rpc_server = rpc_server
        self.backend = backend
        self.max_subscriptions = max_subscriptions
        self.subscriptions_enabled = subscriptions_enabled
        self.timeout = timeout

        self._send = send
        self._outbound: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self._subscriptions: Dict[str, Subscription] = {}
        self._ids = itertools.count(1)

        self.closed = False
        self.broken = False
        self.created_at = time.time()

        # Stats
        self.subscriptions_created: int = 0
        self.notifications_sent: int = 0

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def subscription_types(self) -> Dict[str, int]:
        counts = {st.value: 0 for st in SubscriptionType}
        for sub in self._subscriptions.values():
            counts[sub.sub_type.value] += 1
        return counts

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Start the writer task."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    async def serve(self, receive: ReceiveFn) -> None:
        """
        Run the reader loop until ``receive`` raises (disconnect or I/O
        error), then tear the session down.
        """
        self.start()
        try:
            while not self.closed and not self.broken:
                raw = await receive()
                await self.handle_message(raw)
        finally:
            await self.close()

    async def close(self) -> None:
        """
        Tear the session down: cancel every forwarder, release every stop
        handle and stop the writer. Later frames are dropped.
        """
        if self.closed:
            return
        self.closed = True

        subs = list(self._subscriptions.values())
        self._subscriptions.clear()
        for sub in subs:
            if sub.task is not None:
                sub.task.cancel()
            self._release(sub)

        tasks = [sub.task for sub in subs if sub.task is not None]
        if self._writer is not None:
            self._writer.cancel()
            tasks.append(self._writer)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.debug("WS session %s closed (%d subscriptions released)", self.id, len(subs))

    def _release(self, sub: Subscription) -> None:
        try:
            if sub.release():
                logger.debug("WS released: conn=%s sub=%s", self.id, sub.id)
        except Exception:
            logger.exception("Stop handle for sub=%s raised", sub.id)

    # -- Outbound -----------------------------------------------------------

    def enqueue(self, frame: str) -> bool:
        """Queue a frame for the writer. Returns False once the session is closed."""
        if self.closed or self.broken:
            return False
        self._outbound.put_nowait(frame)
        return True

    async def flush(self) -> None:
        """Wait until the writer has handed every queued frame to the socket."""
        if self._writer is None or self._writer.done():
            return
        joined = asyncio.ensure_future(self._outbound.join())
        try:
            await asyncio.wait({joined, self._writer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            joined.cancel()

    async def _write_loop(self) -> None:
        while True:
            frame = await self._outbound.get()
            try:
                if self.closed:
                    return
                await self._send(frame)
            except Exception as e:
                logger.debug("WS send failed on conn %s: %s", self.id, e)
                self.broken = True
                return
            finally:
                self._outbound.task_done()

    # -- Inbound ------------------------------------------------------------

    async def handle_message(self, raw: Union[str, bytes]) -> None:
        """
        Handle one frame arriving on the WebSocket.

        Intercepts ``eth_subscribe`` and ``eth_unsubscribe``, delegates all
        other methods to the dispatcher, and queues exactly one response.
        """
        try:
            request = parse_request(raw)
        except RPCError as e:
            self.enqueue(RPCResponse(error=e.to_dict()).to_json())
            return

        if self.subscriptions_enabled and request.method == "eth_subscribe":
            response = await self._subscribe(request)
        elif self.subscriptions_enabled and request.method == "eth_unsubscribe":
            response = self._unsubscribe(request)
        else:
            response = await self.rpc_server.dispatch(request, timeout=self.timeout)

        self.enqueue(response.to_json())

    # -- Subscriptions ------------------------------------------------------

    async def _open_stream(self, kind: SubscriptionType, params: list):
        if kind is SubscriptionType.NEW_HEADS:
            return await self.backend.subscribe_new_heads()
        if kind is SubscriptionType.NEW_PENDING_TRANSACTIONS:
            return await self.backend.subscribe_pending_transactions()

        query = None
        if len(params) > 1 and params[1] is not None:
            try:
                query = to_filter_query(params[1])
            except (HexDecodeError, UnsupportedBlockTagError) as e:
                raise RPCError(RPCErrorCode.SERVER_ERROR, str(e))
            except (TypeError, ValueError) as e:
                raise RPCError(RPCErrorCode.INVALID_PARAMS, f"invalid argument 1 (filter): {e}")
        return await self.backend.subscribe_logs(query)

    async def _subscribe(self, request: RPCRequest) -> RPCResponse:
        try:
            request.validate()
            params = request.params
            if not params or params[0] is None:
                raise RPCError(RPCErrorCode.INVALID_PARAMS, "missing value for required argument 0 (kind)")

            try:
                kind = SubscriptionType(params[0])
            except (ValueError, TypeError):
                raise RPCError(
                    RPCErrorCode.INVALID_PARAMS,
                    f"Unknown subscription type: {params[0]}. "
                    f"Valid: {[t.value for t in SubscriptionType]}"
                )

            if self.subscription_count >= self.max_subscriptions:
                raise RPCError(
                    RPCErrorCode.LIMIT_EXCEEDED,
                    f"Max subscriptions per connection reached ({self.max_subscriptions})"
                )

            if not isinstance(self.backend, SubscriptionBackend):
                raise SubscriptionError("subscriptions are not supported by this backend")

            stream, stop = await self._open_stream(kind, params)

        except RPCError as e:
            return RPCResponse(id=request.id, error=e.to_dict())
        except FacadeException as e:
            logger.debug("WS subscribe refused on conn %s: %s", self.id, e)
            return RPCResponse(
                id=request.id,
                error=RPCError(RPCErrorCode.SERVER_ERROR, str(e)).to_dict(),
            )
        except Exception as e:
            logger.warning("WS subscribe failed on conn %s: %s", self.id, e)
            return RPCResponse(
                id=request.id,
                error=RPCError(RPCErrorCode.SERVER_ERROR, str(e)).to_dict(),
            )

        sub = Subscription(id=hex(next(self._ids)), sub_type=kind, stop=stop)

        # Torn down while the backend was subscribing
        if self.closed:
            self._release(sub)
            return RPCResponse(
                id=request.id,
                error=RPCError(RPCErrorCode.SERVER_ERROR, "connection closed").to_dict(),
            )

        self._subscriptions[sub.id] = sub
        sub.task = asyncio.create_task(self._forward(sub, stream))
        self.subscriptions_created += 1

        logger.debug("WS subscribe: conn=%s type=%s sub=%s", self.id, kind.value, sub.id)
        return RPCResponse(id=request.id, result=sub.id)

    def _unsubscribe(self, request: RPCRequest) -> RPCResponse:
        try:
            request.validate()
            params = request.params
            if not params or params[0] is None:
                raise RPCError(RPCErrorCode.INVALID_PARAMS, "missing value for required argument 0 (subscriptionId)")
            if not isinstance(params[0], str):
                raise RPCError(RPCErrorCode.INVALID_PARAMS, "invalid argument 0 (subscriptionId): expected string")
        except RPCError as e:
            return RPCResponse(id=request.id, error=e.to_dict())

        sub = self._subscriptions.pop(params[0], None)
        if sub is None:
            return RPCResponse(id=request.id, result=False)

        self._release(sub)
        if sub.task is not None:
            sub.task.cancel()

        logger.debug("WS unsubscribe: conn=%s sub=%s", self.id, sub.id)
        return RPCResponse(id=request.id, result=True)

    async def _forward(self, sub: Subscription, stream: AsyncIterator[Any]) -> None:
        """Copy stream items to the socket as notifications until the stream ends."""
        encode = _PAYLOAD_ENCODERS[sub.sub_type]
        try:
            async for item in stream:
                if sub.released:
                    break
                notification = {
                    "jsonrpc": JSONRPC_VERSION,
                    "method": SUBSCRIPTION_METHOD,
                    "params": {
                        "subscription": sub.id,
                        "result": encode(item),
                    },
                }
                if not self.enqueue(json.dumps(notification)):
                    break
                self.notifications_sent += 1
        finally:
            if self._subscriptions.get(sub.id) is sub:
                del self._subscriptions[sub.id]
                logger.debug("WS stream ended: conn=%s sub=%s", self.id, sub.id)
            self._release(sub)


# ---------------------------------------------------------------------------
# Connection registry
# ---------------------------------------------------------------------------

class WebSocketManager:
    """
    Tracks live WebSocket sessions and enforces the connection limit.

    Subscriptions are strictly per-connection; the manager only holds the
    registry and aggregates statistics.
    """

    def __init__(
        self,
        rpc_server: RPCServer,
        backend: ReadBackend,
        config: Optional[WebSocketConfig] = None,
    ):
        self.rpc_server = rpc_server
        self.backend = backend
        self.config = config or WebSocketConfig()
        self.max_connections = self.config.max_connections

        # Active sessions
        self._sessions: Dict[str, WebSocketSession] = {}

        # Stats
        self.total_connections_served: int = 0
        self.total_connections_rejected: int = 0
        self._closed_subscriptions_created: int = 0
        self._closed_notifications_sent: int = 0

    # -- Connection lifecycle -----------------------------------------------

    def open_session(self, send: SendFn) -> WebSocketSession:
        """
        Register a new session.

        Raises:
            RPCError: if max connections exceeded
        """
        if len(self._sessions) >= self.max_connections:
            raise RPCError(
                RPCErrorCode.LIMIT_EXCEEDED,
                f"Max WebSocket connections reached ({self.max_connections})"
            )

        session = WebSocketSession(
            self.rpc_server,
            self.backend,
            send,
            max_subscriptions=self.config.max_subscriptions,
            subscriptions_enabled=self.config.subscriptions_enabled,
            timeout=self.config.timeout,
        )
        self._sessions[session.id] = session
        self.total_connections_served += 1
        logger.info("WS connect: %s (active=%d)", session.id, len(self._sessions))
        return session

    async def close_session(self, session: WebSocketSession) -> None:
        """Tear a session down and drop it from the registry."""
        await session.close()
        if self._sessions.pop(session.id, None) is not None:
            self._closed_subscriptions_created += session.subscriptions_created
            self._closed_notifications_sent += session.notifications_sent
            logger.info("WS disconnect: %s (active=%d)", session.id, len(self._sessions))

    async def close_all(self) -> None:
        """Close every live session (server shutdown)."""
        for session in list(self._sessions.values()):
            await self.close_session(session)

    async def handle_websocket(self, websocket: WebSocket) -> None:
        """FastAPI/Starlette WebSocket endpoint."""
        if len(self._sessions) >= self.max_connections:
            self.total_connections_rejected += 1
            logger.warning("WS connection rejected: limit of %d reached", self.max_connections)
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
            return

        await websocket.accept()
        try:
            session = self.open_session(websocket.send_text)
        except RPCError:
            # Lost a race for the last slot while accepting
            self.total_connections_rejected += 1
            logger.warning("WS connection rejected: limit of %d reached", self.max_connections)
            await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
            return

        async def receive() -> Union[str, bytes]:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            if message.get("text") is not None:
                return message["text"]
            return message.get("bytes") or b""

        try:
            await session.serve(receive)
        except WebSocketDisconnect as e:
            logger.debug("WS peer closed conn %s (code=%s)", session.id, e.code)
        finally:
            await self.close_session(session)

    # -- Diagnostics --------------------------------------------------------

    @property
    def active_connections(self) -> int:
        return len(self._sessions)

    @property
    def active_subscriptions(self) -> int:
        return sum(s.subscription_count for s in self._sessions.values())

    def get_stats(self) -> Dict[str, Any]:
        """Return manager statistics."""
        by_type = {st.value: 0 for st in SubscriptionType}
        for session in self._sessions.values():
            for name, count in session.subscription_types().items():
                by_type[name] += count

        return {
            "active_connections": self.active_connections,
            "active_subscriptions": self.active_subscriptions,
            "total_connections_served": self.total_connections_served,
            "total_connections_rejected": self.total_connections_rejected,
            "total_subscriptions_created": self._closed_subscriptions_created
                + sum(s.subscriptions_created for s in self._sessions.values()),
            "total_notifications_sent": self._closed_notifications_sent
                + sum(s.notifications_sent for s in self._sessions.values()),
            "subscriptions_by_type": by_type,
        }


def create_ws_app(manager: WebSocketManager) -> FastAPI:
    """Build the WebSocket transport application (endpoint at ``/``)."""
    app = FastAPI(
        title="Geth Facade",
        description="Ethereum JSON-RPC facade (WebSocket transport).",
        version=FACADE_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_api_websocket_route("/", manager.handle_websocket)
    return app
