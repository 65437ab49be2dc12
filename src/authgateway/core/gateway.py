"""csrf-token injection + transparent re-authentication for outbound requests.

callers describe a request as a builder (`token -> request spec`) instead of
issuing it directly. the gateway builds it with the current token, runs it,
and classifies the outcome. a 401 flips the gateway into recovery:

- the failed request is parked in a fifo queue
- every later request is parked too, without touching the network
- the auth failure handler is told to go log the user back in

once the login flow has a fresh token it calls `complete_recovery(token)`.
the queue is swapped out, the gateway goes back to normal and the parked
requests are replayed one at a time with the new token. each caller's
original future gets the replayed outcome, so from the caller's side a
session expiry only looks like a slow request.
"""

import asyncio
import json
import logging
from typing import Any, Callable, NoReturn

from ..utils.html import html_to_text
from .errors import DecodeError, GatewayFailure, ServerError
from .transport import HttpxTransport, Response, Transport

logger = logging.getLogger("authgateway.gateway")

RequestBuilder = Callable[[Any], dict]
"""`token -> request spec`. the spec is a dict with a "url" key; everything
else in it is handed to the transport as options."""


class QueueEntry:
    """one parked caller.

    :param builder: rebuilds the request at replay time.
    :param future: the caller's future. settled by the replay, never replaced.
    """
    builder: RequestBuilder
    future: asyncio.Future

    def __init__(self, builder: RequestBuilder, future: asyncio.Future):
        self.builder = builder
        self.future = future


class AuthGateway:
    """long-lived request gateway holding the token, recovery flag and replay queue.

    lifecycle:
    - `set_token()`: install the csrf token builders will receive
    - `register_auth_failure_handler()`: hook the login flow (fires on every 401)
    - `register_failure_handler()`: hook error display for `surface_failure()`
    - `execute()` / `fetch()`: run a request, or park it while recovering
    - `complete_recovery()`: new token in, queued requests replayed in order
    - `wait_for_replay()`: await any replay still in flight

    handlers can be plain callables or coroutine functions. coroutines are
    scheduled in the background rather than awaited, so a handler is free to
    call `complete_recovery()` itself.

    all methods must run on the same event loop; there is no locking.
    """

    transport: Transport

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        token: Any = None,
        auth_failure_handler: Callable[[], Any] | None = None,
        failure_handler: Callable[[str], Any] | None = None,
    ):
        """
        :param transport: async `(url, options) -> response` callable.
        defaults to a new `HttpxTransport()`.
        :param token: initial csrf token.
        :param auth_failure_handler: called with no arguments on every 401.
        :param failure_handler: called with display text by `surface_failure()`.
        """
        self.transport = transport if transport is not None else HttpxTransport()
        self._token = token
        self._recovering = False
        self._queue: list[QueueEntry] = []
        self._auth_failure_handler = auth_failure_handler
        self._failure_handler = failure_handler
        self._tasks: set[asyncio.Task] = set()
        self._replays: set[asyncio.Task] = set()

    @property
    def token(self):
        return self._token

    @property
    def recovering(self) -> bool:
        return self._recovering

    @property
    def pending(self) -> int:
        """number of requests parked for the next replay."""
        return len(self._queue)

    def set_token(self, token):
        """overwrite the current token. no validation."""
        self._token = token

    def register_auth_failure_handler(self, handler: Callable[[], Any] | None):
        """install the login-flow hook, replacing any previous one.

        fires on *every* 401, including ones seen while already recovering
        (e.g. several in-flight requests expiring together, or a 401 during
        replay). login flows that must only open once should dedupe themselves.

        :param handler: callable taking no arguments, or `None` to clear.
        """
        if self._auth_failure_handler is not None:
            logger.debug("replacing auth failure handler %r", self._auth_failure_handler)
        self._auth_failure_handler = handler

    def register_failure_handler(self, handler: Callable[[str], Any] | None):
        """install the error-display hook used by `surface_failure()`, replacing any previous one.

        :param handler: callable taking the display text, or `None` to clear.
        """
        if self._failure_handler is not None:
            logger.debug("replacing failure handler %r", self._failure_handler)
        self._failure_handler = handler

    def execute(self, builder: RequestBuilder) -> asyncio.Future:
        """main entry point. run `builder`'s request now, or park it while recovering.

        the normal/recovering decision (and the enqueue) happens right here at
        call time, so calls made back to back keep their order in the queue.

        request failures never raise from this method; they land in the
        returned future:
        - resolves with the response for ok (2xx/3xx) and other non-5xx statuses
        - on 401 stays pending until a later `complete_recovery()` replays it
        - fails with `ServerError(body text)` for status >= 500
        - fails with the transport's own exception when no response came back

        :param builder: `token -> {"url": ..., **transport_options}`.
        :return: future settled with the final outcome.
        :rtype: asyncio.Future
        """
        loop = self._get_loop("execute")
        future = loop.create_future()

        if self._recovering:
            # we know it would 401; hold it until the login flow is done
            self._enqueue(builder, future)
            return future

        try:
            url, options = self._build(builder)
        except Exception as error:
            future.set_exception(error)
            return future
        self._spawn(self._send(url, options, builder, future))
        return future

    async def fetch(self, builder: RequestBuilder) -> Response:
        """`await`-friendly form of `execute()`."""
        return await self.execute(builder)

    def complete_recovery(self, token) -> asyncio.Future:
        """finish a recovery: install `token` and replay everything queued so far.

        the queue is swapped for an empty one and the gateway leaves recovery
        before the replay starts. requests arriving from here on run normally
        (or form a new queue if the replay hits another 401); they are never
        part of this replay.

        replay is strictly sequential: each entry is rebuilt with the current
        token, sent, and fully classified before the next one starts. a
        transport failure or 5xx only fails that entry's future. an entry that
        gets another 401 is parked again and takes the untouched rest of the
        batch back into the queue right behind it, in order.

        the returned future is shielded: cancelling it (or timing it out with
        `asyncio.wait_for`) stops the wait, not the replay.

        :param token: the freshly obtained csrf token.
        :return: future done when the replay finishes (awaiting it is optional).
        :rtype: asyncio.Future
        """
        loop = self._get_loop("complete_recovery")
        self.set_token(token)

        entries, self._queue = self._queue, []
        self._recovering = False
        logger.info("recovery complete, replaying %d queued request(s)", len(entries))

        task = loop.create_task(self._replay(entries))
        self._replays.add(task)
        task.add_done_callback(self._replays.discard)
        return asyncio.shield(task)

    async def wait_for_replay(self, timeout: float | None = None):
        """await every replay currently in flight.

        :param timeout: optional timeout in seconds. replays keep running if it expires.
        :raises asyncio.TimeoutError: when `timeout` expires first.
        """
        if not self._replays:
            return
        _, pending = await asyncio.wait(set(self._replays), timeout=timeout)
        if pending:
            raise asyncio.TimeoutError(f"{len(pending)} replay(s) still running after {timeout}s")

    def surface_failure(self, reason) -> NoReturn:
        """report `reason` to the failure handler, then raise `GatewayFailure`.

        meant as the last step of a caller's error path:

            try:
                data = await gateway.parse_json(await gateway.fetch(builder))
            except Exception as error:
                gateway.surface_failure(error)

        always raises so nothing after it runs as if the request succeeded.

        :param reason: string, exception or anything `str()`-able.
        :raises GatewayFailure: always, carrying the display text.
        """
        if isinstance(reason, str):
            text = reason
        elif isinstance(reason, BaseException):
            text = str(reason) or type(reason).__name__
        else:
            text = str(reason)

        self._notify(self._failure_handler, text)

        if isinstance(reason, BaseException):
            raise GatewayFailure(text) from reason
        raise GatewayFailure(text)

    @staticmethod
    async def parse_json(response: Response):
        """read `response`'s body and parse it as json.

        when the body isn't json (typically an html error or login page) the
        visible text of the markup becomes the error message.

        :param response: transport response.
        :return: parsed json.
        :raises DecodeError: body is not json.
        """
        body = await response.text()
        try:
            return json.loads(body)
        except ValueError as error:
            message = html_to_text(body) or body
            raise DecodeError(message, body) from error

    def _get_loop(self, caller: str) -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            raise RuntimeError(f"AuthGateway.{caller}() must be called from within an asyncio event loop")

    def _build(self, builder: RequestBuilder) -> tuple[str, dict]:
        # copy so a builder returning a shared dict doesn't lose its "url"
        spec = dict(builder(self._token))
        if "url" not in spec:
            raise ValueError("request spec is missing 'url'")
        url = spec.pop("url")
        return url, spec

    def _enqueue(self, builder: RequestBuilder, future: asyncio.Future):
        self._queue.append(QueueEntry(builder, future))
        logger.debug("queued request (%d pending)", len(self._queue))

    async def _attempt(self, builder: RequestBuilder, future: asyncio.Future, rest: list[QueueEntry] = ()) -> bool:
        try:
            url, options = self._build(builder)
        except Exception as error:
            _reject(future, error)
            return False
        return await self._send(url, options, builder, future, rest)

    async def _send(
        self,
        url: str,
        options: dict,
        builder: RequestBuilder,
        future: asyncio.Future,
        rest: list[QueueEntry] = (),
    ) -> bool:
        """one transport round trip + classification.

        only cancellation escapes (and cancels `future` on the way out).

        :param rest: entries that must stay queued behind this one if it gets parked.
        :return: `True` when the request got a 401 and was parked again.
        """
        try:
            response = await self.transport(url, options)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as error:
            logger.debug("transport failed for %s: %r", url, error)
            _reject(future, error)
            return False

        status = response.status
        if response.ok:
            logger.debug("%s -> %d", url, status)
            _resolve(future, response)
        elif status == 401:
            self._suspend(builder, future, url, rest)
            return True
        elif status >= 500:
            try:
                text = await response.text()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as error:
                _reject(future, error)
                return False
            logger.warning("server error %d from %s", status, url)
            _reject(future, ServerError(text, status, response))
        else:
            # 404 and friends are answers, not failures
            logger.debug("%s -> %d", url, status)
            _resolve(future, response)
        return False

    def _suspend(self, builder: RequestBuilder, future: asyncio.Future, url: str, rest: list[QueueEntry] = ()):
        if not self._recovering:
            logger.info("got 401 from %s, parking requests until recovery completes", url)
        self._recovering = True
        # same future, so the caller gets exactly one result: the replay's
        self._enqueue(builder, future)
        # queued before the handler runs, it may call complete_recovery() synchronously
        self._queue.extend(rest)
        self._notify(self._auth_failure_handler)

    async def _replay(self, entries: list[QueueEntry]):
        total = len(entries)
        i = 0
        try:
            while i < total:
                entry = entries[i]
                i += 1
                if entry.future.done():
                    logger.warning("skipping queued request %d/%d, caller already cancelled it", i, total)
                    continue
                logger.debug("replaying queued request %d/%d", i, total)
                if await self._attempt(entry.builder, entry.future, entries[i:]):
                    logger.info("request %d/%d expired again, parked it + %d more", i, total, total - i)
                    return
        except asyncio.CancelledError:
            rest = [entry for entry in entries[i:] if not entry.future.done()]
            logger.warning("replay cancelled, cancelling %d unsent request(s)", len(rest))
            for entry in rest:
                entry.future.cancel()
            raise
        logger.info("finished replaying %d request(s)", total)

    def _notify(self, handler: Callable | None, *args):
        if handler is None:
            return
        try:
            result = handler(*args)
        except Exception:
            logger.exception("handler %r failed", handler)
            return
        if asyncio.iscoroutine(result):
            try:
                self._spawn(result)
            except RuntimeError:
                result.close()
                logger.exception("no running event loop for handler %r", handler)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        # strong ref until done
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("background task failed", exc_info=task.exception())


def _resolve(future: asyncio.Future, response):
    # the caller may have cancelled in the meantime
    if not future.done():
        future.set_result(response)


def _reject(future: asyncio.Future, error: BaseException):
    if not future.done():
        future.set_exception(error)
