"""
Geth Facade JSON-RPC 2.0 Dispatcher

Implements the JSON-RPC 2.0 envelope and method dispatch with:
- Method registration and namespacing (eth_, net_, web3_)
- Per-method positional parameter schemas with coercion
- Error handling with standard codes
- Transport independence: HTTP and WebSocket both feed ``dispatch``

Every failure is turned into an error response carrying the request id;
nothing raised by a handler or a backend escapes to the transport.
"""

import asyncio
import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..constants import JSONRPC_VERSION
from ..exceptions import FacadeException, HexDecodeError, UnsupportedBlockTagError
from ..logger import get_logger

logger = get_logger(__name__)


class RPCErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 error codes."""

    # Standard errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (-32000 to -32099)
    SERVER_ERROR = -32000
    LIMIT_EXCEEDED = -32005


@dataclass
class RPCError(Exception):
    """JSON-RPC error."""

    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        result = {
            "code": int(self.code),
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


@dataclass
class RPCRequest:
    """JSON-RPC request."""

    jsonrpc: Any
    method: Any
    params: Any
    id: Union[str, int, float, None]

    @classmethod
    def from_dict(cls, data: dict) -> "RPCRequest":
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            method=data.get("method"),
            params=data.get("params"),
            id=data.get("id"),
        )

    def validate(self) -> None:
        """Check the envelope; raises ``RPCError`` on violations."""
        if self.jsonrpc != JSONRPC_VERSION:
            raise RPCError(RPCErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")
        if not isinstance(self.method, str) or not self.method:
            raise RPCError(RPCErrorCode.INVALID_REQUEST, "Missing method")
        if self.params is None:
            self.params = []
        elif not isinstance(self.params, list):
            raise RPCError(RPCErrorCode.INVALID_PARAMS, "params must be an array")


@dataclass
class RPCResponse:
    """JSON-RPC response."""

    jsonrpc: str = JSONRPC_VERSION
    result: Optional[Any] = None
    error: Optional[Dict] = None
    id: Union[str, int, float, None] = None

    def to_dict(self) -> dict:
        response = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            response["error"] = self.error
        else:
            response["result"] = self.result
        return response

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class Param:
    """
    Positional parameter declaration.

    ``coerce`` converts the raw JSON value; it raises ``TypeError`` or
    ``ValueError`` for structural mismatches and ``HexDecodeError`` /
    ``UnsupportedBlockTagError`` for undecodable values.
    """

    name: str
    coerce: Callable[[Any], Any] = field(default=lambda value: value, repr=False)
    required: bool = True
    default: Any = None


# Type for RPC method handlers
RPCMethod = Callable[..., Any]


class RPCModule:
    """
    Base class for RPC modules.

    Subclass this to create method namespaces like eth_, net_, etc.
    """

    # Namespace prefix (e.g., "eth", "net")
    namespace: str = ""

    def __init__(self, backend: Any = None):
        """
        Initialize module with the backend it serves.

        Args:
            backend: ``ReadBackend`` implementation
        """
        self.backend = backend

    def get_methods(self) -> Dict[str, RPCMethod]:
        """
        Get all public methods in this module.

        Methods starting with underscore are private.

        Returns:
            Dict mapping method names to callables
        """
        methods = {}
        for name in dir(self):
            if name.startswith("_"):
                continue
            attr = getattr(self, name)
            if callable(attr) and hasattr(attr, "__rpc_method__"):
                full_name = f"{self.namespace}_{name}" if self.namespace else name
                methods[full_name] = attr
        return methods


def rpc_method(func: Optional[RPCMethod] = None, *, params: Sequence[Param] = ()) -> Any:
    """
    Decorator to mark a method as an RPC endpoint.

    Usage:
        @rpc_method
        async def blockNumber(self) -> str:
            return encode_quantity(await self.backend.block_number())

        @rpc_method(params=[Param("address", decode_data), Param("block", parse_block_tag)])
        async def getBalance(self, address, block) -> str:
            ...
    """
    def mark(f: RPCMethod) -> RPCMethod:
        f.__rpc_method__ = True
        f.__rpc_params__ = tuple(params)
        return f

    if func is not None:
        return mark(func)
    return mark


def parse_request(data: Union[str, bytes, dict]) -> RPCRequest:
    """
    Decode one request envelope.

    Raises ``RPCError`` (-32700) for malformed JSON, for batches and for any
    JSON value that is not an object.
    """
    if isinstance(data, (str, bytes, bytearray)):
        try:
            parsed = json.loads(data)
        except (ValueError, RecursionError) as e:
            raise RPCError(RPCErrorCode.PARSE_ERROR, f"Parse error: {e}")
    else:
        parsed = data

    if isinstance(parsed, list):
        raise RPCError(RPCErrorCode.PARSE_ERROR, "Parse error: batch requests are not supported")
    if not isinstance(parsed, dict):
        raise RPCError(RPCErrorCode.PARSE_ERROR, "Parse error: request must be a JSON object")
    return RPCRequest.from_dict(parsed)


class RPCServer:
    """
    JSON-RPC 2.0 dispatcher.

    Manages method registration and request handling. Stateless per request,
    so one instance is shared by every transport and connection.
    """

    def __init__(self):
        self._methods: Dict[str, RPCMethod] = {}
        self._schemas: Dict[str, Tuple[Param, ...]] = {}
        self._modules: Dict[str, RPCModule] = {}

    def register_method(self, name: str, handler: RPCMethod, params: Optional[Sequence[Param]] = None):
        """
        Register a single RPC method.

        Args:
            name: Method name (e.g., "eth_blockNumber")
            handler: Async function to handle the method
            params: Parameter schema; defaults to the one attached by ``rpc_method``
        """
        if params is None:
            params = getattr(handler, "__rpc_params__", ())
        self._methods[name] = handler
        self._schemas[name] = tuple(params)
        logger.debug(f"Registered RPC method: {name}")

    def register_module(self, module: RPCModule):
        """
        Register an RPC module.

        Args:
            module: RPCModule instance
        """
        methods = module.get_methods()
        for name, handler in methods.items():
            self._methods[name] = handler
            self._schemas[name] = handler.__rpc_params__
        self._modules[module.namespace] = module
        logger.debug(f"Registered RPC module: {module.namespace} ({len(methods)} methods)")

    def unregister_module(self, namespace: str):
        """
        Unregister an RPC module.

        Args:
            namespace: Module namespace to remove
        """
        if namespace in self._modules:
            module = self._modules.pop(namespace)
            for name in module.get_methods():
                self._methods.pop(name, None)
                self._schemas.pop(name, None)
            logger.debug(f"Unregistered RPC module: {namespace}")

    def get_methods(self) -> List[str]:
        """Get list of registered method names."""
        return list(self._methods.keys())

    def has_method(self, name: str) -> bool:
        return name in self._methods

    async def handle_request(self, data: Union[str, bytes, dict], timeout: Optional[float] = None) -> str:
        """
        Handle a raw JSON-RPC request.

        Args:
            data: Request data (JSON string or dict)
            timeout: Deadline in seconds for the handler

        Returns:
            JSON response string
        """
        try:
            request = parse_request(data)
        except RPCError as e:
            return RPCResponse(error=e.to_dict()).to_json()

        response = await self.dispatch(request, timeout=timeout)
        return response.to_json()

    async def dispatch(self, request: RPCRequest, timeout: Optional[float] = None) -> RPCResponse:
        """Serve one decoded request. Never raises."""
        try:
            request.validate()

            handler = self._methods.get(request.method)
            if handler is None:
                raise RPCError(RPCErrorCode.METHOD_NOT_FOUND, "Method not found")

            logger.debug(f"RPC call {request.method} id={request.id!r}")
            args = self._coerce_params(self._schemas[request.method], request.params)

            if timeout is not None:
                result = await asyncio.wait_for(handler(*args), timeout)
            else:
                result = await handler(*args)

            return RPCResponse(id=request.id, result=result)

        except RPCError as e:
            return RPCResponse(id=request.id, error=e.to_dict())

        except asyncio.TimeoutError:
            logger.warning(f"RPC method {request.method} timed out after {timeout}s")
            return self._server_error(request, "request timed out")

        except FacadeException as e:
            logger.warning(f"RPC method {request.method} failed: {e}")
            return self._server_error(request, str(e))

        except Exception as e:
            logger.exception(f"Error handling RPC method {request.method}")
            return self._server_error(request, str(e))

    @staticmethod
    def _server_error(request: RPCRequest, message: str) -> RPCResponse:
        return RPCResponse(
            id=request.id,
            error=RPCError(RPCErrorCode.SERVER_ERROR, message).to_dict(),
        )

    @staticmethod
    def _coerce_params(schema: Tuple[Param, ...], raw: List[Any]) -> List[Any]:
        """Apply a method's parameter schema to the positional params."""
        required = sum(1 for p in schema if p.required)
        if len(raw) < required:
            missing = schema[len(raw)]
            raise RPCError(
                RPCErrorCode.INVALID_PARAMS,
                f"missing value for required argument {len(raw)} ({missing.name})",
            )

        args = []
        for index, param in enumerate(schema):
            value = raw[index] if index < len(raw) else None
            if value is None:
                if param.required:
                    raise RPCError(
                        RPCErrorCode.INVALID_PARAMS,
                        f"missing value for required argument {index} ({param.name})",
                    )
                args.append(param.default)
                continue

            try:
                args.append(param.coerce(value))
            except (HexDecodeError, UnsupportedBlockTagError) as e:
                raise RPCError(RPCErrorCode.SERVER_ERROR, str(e))
            except (TypeError, ValueError) as e:
                raise RPCError(
                    RPCErrorCode.INVALID_PARAMS,
                    f"invalid argument {index} ({param.name}): {e}",
                )
        return args
