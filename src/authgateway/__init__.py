from .core.gateway import AuthGateway, QueueEntry, RequestBuilder
from .core.errors import (
    GatewayError,
    TransportError,
    ServerError,
    DecodeError,
    GatewayFailure,
)
from .core.transport import (
    Response,
    Transport,
    HttpxTransport,
    HttpxResponse,
    is_ok,
)
from .core.tab import TabTransport, TabResponse
from . import utils

__all__ = [
    "AuthGateway",
    "QueueEntry",
    "RequestBuilder",
    "GatewayError",
    "TransportError",
    "ServerError",
    "DecodeError",
    "GatewayFailure",
    "Response",
    "Transport",
    "HttpxTransport",
    "HttpxResponse",
    "is_ok",
    "TabTransport",
    "TabResponse",
    "utils",
]
