import asyncio

import pytest

from authgateway import is_ok


class FakeResponse:
    """minimal transport response: status + body."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body

    @property
    def ok(self):
        return is_ok(self.status)

    async def text(self):
        return self.body

    def __repr__(self):
        return f"<FakeResponse [{self.status}] {self.body!r}>"


class FakeTransport:
    """scripted in-memory transport.

    `add(url, *outcomes)` queues outcomes per url (FakeResponse or an exception
    to raise). `gates[url]` holds every call to that url until the event is set.
    every call is recorded in `calls` as (url, options).
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self._outcomes: dict[str, list] = {}

    def add(self, url: str, *outcomes):
        self._outcomes.setdefault(url, []).extend(outcomes)

    @property
    def urls(self):
        return [url for url, _ in self.calls]

    @property
    def tokens(self):
        return [options["headers"]["X-CSRF-Token"] for _, options in self.calls]

    async def __call__(self, url: str, options: dict):
        self.calls.append((url, options))
        gate = self.gates.get(url)
        if gate is not None:
            await gate.wait()
        outcome = self._outcomes[url].pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_builder(url: str, **options):
    def builder(token):
        return {"url": url, "headers": {"X-CSRF-Token": token}, **options}
    return builder


async def _settle(rounds: int = 20):
    # let scheduled attempts run to completion
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def respond():
    return FakeResponse


@pytest.fixture
def builder():
    return make_builder


@pytest.fixture
def settle():
    return _settle
