"""browser-backed transport.

runs `fetch()` inside a live `nodriver` tab so requests carry the browser's
session cookies + origin. that's the environment csrf-protected backends
expect, and it lets the login flow happen in the same browser window that
later receives the new token.
"""

import json
import logging
from functools import cache
from pathlib import Path

import nodriver

from .errors import TransportError
from .transport import is_ok

logger = logging.getLogger("authgateway.tab")

FETCH_JS = Path(__file__).resolve().parent.parent / "js" / "fetch.js"


@cache
def fetch_script() -> str:
    """js/fetch.js as a single callable expression, read once."""
    logger.debug("loading fetch script from %s", FETCH_JS)
    return FETCH_JS.read_text(encoding="utf-8").strip()


class TabResponse:
    """response captured by js/fetch.js.

    the body is buffered in the page before it crosses CDP, so `text()` never
    touches the network.

    :param status: http status.
    :param url: final url after redirects.
    :param headers: response headers (lowercased keys, as fetch reports them).
    :param body: response body text.
    """
    status: int
    url: str
    headers: dict[str, str]

    def __init__(self, status: int, url: str, headers: dict[str, str], body: str):
        self.status = status
        self.url = url
        self.headers = headers
        self._body = body

    @property
    def ok(self) -> bool:
        return is_ok(self.status)

    async def text(self) -> str:
        return self._body

    async def json(self):
        return json.loads(self._body)

    def __repr__(self):
        return f"<TabResponse [{self.status}] {self.url}>"


class TabTransport:
    """transport that executes `fetch(url, options)` in `tab`.

    options are fetch init options (`method`, `headers`, `body`,
    `credentials`, ...) and must be json serializable. a rejected fetch
    (network error, cors, offline) raises `TransportError` with the
    browser's message.

    :param tab: tab whose page context runs the request. navigate it to the
    backend's origin first so relative urls and cookies resolve.
    """
    tab: nodriver.Tab

    def __init__(self, tab: nodriver.Tab):
        self.tab = tab

    async def __call__(self, url: str, options: dict) -> TabResponse:
        expression = f"{fetch_script()}({json.dumps(url)}, {json.dumps(options)})"
        logger.debug("fetching %s in tab %s", url, getattr(self.tab, "url", "<unknown>"))
        result = await self.tab.evaluate(expression, await_promise=True)
        # nodriver hands back exception details instead of a value when the script throws
        if not isinstance(result, str):
            raise TransportError(f"fetch script failed in tab: {result!r}")

        data: dict = json.loads(result)
        if "error" in data:
            raise TransportError(data["error"])
        return TabResponse(
            status=data["status"],
            url=data.get("url") or url,
            headers=data.get("headers") or {},
            body=data.get("text") or "",
        )
