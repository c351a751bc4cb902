"""
fixedsig JSON-RPC 2.0 Server

Dispatches ``namespace_method`` calls to RPCModule instances. Supports
positional or named params, batches and notifications. Engine errors
(MultisigError) are answered as JSON-RPC errors whose ``data.error`` holds
the stable error name, e.g. ``{"error": "AlreadyVoted"}``.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Union

from ..exceptions import ExternalFailure, MultisigError, NotFound, Unauthorized
from ..logger import get_logger

logger = get_logger(__name__)


class RPCErrorCode(IntEnum):
    # JSON-RPC 2.0
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Implementation-defined (-32000 to -32099)
    RESOURCE_NOT_FOUND = -32001
    RESOURCE_UNAVAILABLE = -32002
    TRANSACTION_REJECTED = -32003
    EXECUTION_ERROR = -32015
    ACTION_NOT_ALLOWED = -32099


@dataclass
class RPCError(Exception):
    """Raised by handlers (or built by the server) to answer with an error object."""

    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def multisig_error_to_rpc(exc: MultisigError) -> RPCError:
    """Unauthorized, NotFound and ExternalFailure get their own codes; the rest are rejections."""
    if isinstance(exc, Unauthorized):
        code = RPCErrorCode.ACTION_NOT_ALLOWED
    elif isinstance(exc, NotFound):
        code = RPCErrorCode.RESOURCE_NOT_FOUND
    elif isinstance(exc, ExternalFailure):
        code = RPCErrorCode.EXECUTION_ERROR
    else:
        code = RPCErrorCode.TRANSACTION_REJECTED
    return RPCError(code, str(exc) or exc.code, {"error": exc.code})


@dataclass
class RPCRequest:
    jsonrpc: str
    method: str
    params: Union[List, Dict, None]
    id: Union[str, int, None]

    @classmethod
    def from_dict(cls, data: dict) -> "RPCRequest":
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            method=data.get("method", ""),
            params=data.get("params"),
            id=data.get("id"),
        )

    @property
    def is_notification(self) -> bool:
        return self.id is None


@dataclass
class RPCResponse:
    jsonrpc: str = "2.0"
    result: Optional[Any] = None
    error: Optional[Dict] = None
    id: Union[str, int, None] = None

    @classmethod
    def failure(cls, error: RPCError, request_id: Union[str, int, None] = None) -> "RPCResponse":
        return cls(error=error.to_dict(), id=request_id)

    def to_dict(self) -> dict:
        response = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            response["error"] = self.error
        else:
            response["result"] = self.result
        return response


RPCMethod = Callable[..., Any]


def rpc_method(func: RPCMethod) -> RPCMethod:
    """Expose an async RPCModule method as ``<namespace>_<name>``."""
    func.__rpc_method__ = True
    return func


class RPCModule:
    """
    A namespace of RPC methods sharing one ``context``.

    The node passes its NodeContext (engine, queries, clock, config).
    """

    namespace: str = ""

    def __init__(self, context: Any = None):
        self.context = context

    def get_methods(self) -> Dict[str, RPCMethod]:
        methods = {}
        for name in dir(self):
            if name.startswith("_"):
                continue
            attr = getattr(self, name)
            if callable(attr) and getattr(attr, "__rpc_method__", False):
                methods[f"{self.namespace}_{name}" if self.namespace else name] = attr
        return methods


class RPCServer:
    """Method table plus request/response handling."""

    def __init__(self):
        self._methods: Dict[str, RPCMethod] = {}

    def register_module(self, module: RPCModule) -> None:
        methods = module.get_methods()
        self._methods.update(methods)
        logger.info(f"RPC module registered: {module.namespace} ({len(methods)} methods)")

    def get_methods(self) -> List[str]:
        return sorted(self._methods)

    async def handle_request(self, data: Union[str, bytes, dict, list]) -> Optional[str]:
        """
        Answer one request or a batch.

        Returns the JSON response text, or None when nothing is owed
        (a notification, or a batch made only of notifications).
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                error = RPCError(RPCErrorCode.PARSE_ERROR, f"Parse error: {e}")
                return json.dumps(RPCResponse.failure(error).to_dict())

        if isinstance(data, list):
            if not data:
                error = RPCError(RPCErrorCode.INVALID_REQUEST, "Empty batch")
                return json.dumps(RPCResponse.failure(error).to_dict())
            answers = await asyncio.gather(*(self._answer(item) for item in data))
            answers = [a for a in answers if a is not None]
            return json.dumps(answers) if answers else None

        answer = await self._answer(data)
        return json.dumps(answer) if answer is not None else None

    async def _answer(self, data: Any) -> Optional[dict]:
        if not isinstance(data, dict):
            error = RPCError(RPCErrorCode.INVALID_REQUEST, "Invalid request")
            return RPCResponse.failure(error).to_dict()

        request = RPCRequest.from_dict(data)
        try:
            result = await self._invoke(request)
        except RPCError as e:
            error = e
        except MultisigError as e:
            logger.info(f"RPC {request.method} rejected: {e.code}: {e}")
            error = multisig_error_to_rpc(e)
        except (TypeError, ValueError) as e:
            error = RPCError(RPCErrorCode.INVALID_PARAMS, f"Invalid params: {e}")
        except Exception as e:
            logger.exception(f"RPC {request.method} failed")
            error = RPCError(RPCErrorCode.INTERNAL_ERROR, str(e))
        else:
            if request.is_notification:
                return None
            return RPCResponse(result=result, id=request.id).to_dict()

        if request.is_notification:
            return None
        return RPCResponse.failure(error, request.id).to_dict()

    async def _invoke(self, request: RPCRequest) -> Any:
        if request.jsonrpc != "2.0":
            raise RPCError(RPCErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")
        if not request.method:
            raise RPCError(RPCErrorCode.INVALID_REQUEST, "Missing method")

        handler = self._methods.get(request.method)
        if handler is None:
            raise RPCError(RPCErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}")

        params = request.params
        if params is None:
            return await handler()
        if isinstance(params, list):
            return await handler(*params)
        if isinstance(params, dict):
            return await handler(**params)
        raise RPCError(RPCErrorCode.INVALID_PARAMS, "Params must be an array or object")
