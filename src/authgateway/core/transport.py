"""transport boundary.

the gateway never talks to the network itself. it hands `(url, options)` to a
transport and classifies whatever comes back. anything with this shape works:

    async def transport(url: str, options: dict) -> Response

where the response exposes `ok`, `status` and an async `text()`.

`HttpxTransport` is the default and maps options onto `httpx.AsyncClient.request`.
"""

import logging
from typing import Any, Awaitable, Callable, Protocol

import httpx

logger = logging.getLogger("authgateway.transport")


class Response(Protocol):
    """what the gateway needs from a transport response."""
    ok: bool
    status: int

    async def text(self) -> str: ...


Transport = Callable[[str, dict], Awaitable[Response]]


def is_ok(status: int) -> bool:
    """2xx and 3xx count as ok."""
    return 200 <= status < 400


class HttpxResponse:
    """`httpx.Response` adapted to the gateway's response shape.

    :param raw: the underlying httpx response (still reachable for headers, cookies etc).
    """
    raw: httpx.Response

    def __init__(self, raw: httpx.Response):
        self.raw = raw

    @property
    def ok(self) -> bool:
        return is_ok(self.raw.status_code)

    @property
    def status(self) -> int:
        return self.raw.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.raw.headers

    @property
    def url(self) -> str:
        return str(self.raw.url)

    async def text(self) -> str:
        await self.raw.aread()
        return self.raw.text

    async def json(self) -> Any:
        await self.raw.aread()
        return self.raw.json()

    def __repr__(self):
        return f"<HttpxResponse [{self.status}] {self.url}>"


class HttpxTransport:
    """default transport backed by `httpx.AsyncClient`.

    options are passed straight to `AsyncClient.request()` as keyword
    arguments (`headers`, `json`, `content`, `params`, ...). `method`
    defaults to GET.

    network errors (`httpx.TransportError` and friends) propagate untouched so
    the gateway can hand the raw reason to the caller.

    :param client: existing client to reuse. when omitted a client is created
    from `client_kwargs` and owned (closed by `aclose()`) by this transport.
    :param client_kwargs: forwarded to `httpx.AsyncClient()`.
    """
    client: httpx.AsyncClient

    def __init__(self, client: httpx.AsyncClient | None = None, **client_kwargs):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(**client_kwargs)

    async def __call__(self, url: str, options: dict) -> HttpxResponse:
        options = dict(options)
        method = options.pop("method", "GET")
        logger.debug("sending %s %s", method, url)
        raw = await self.client.request(method, url, **options)
        return HttpxResponse(raw)

    async def aclose(self):
        """close the client if we created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
