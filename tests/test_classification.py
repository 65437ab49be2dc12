import asyncio

import pytest

from authgateway import AuthGateway, ServerError

pytestmark = [
    pytest.mark.classification,
    pytest.mark.asyncio,
]


async def test_ok_response_resolves_with_current_token(transport, respond, builder):
    transport.add("/nodes", respond(200, "[]"))
    gateway = AuthGateway(transport, token="tok1")

    response = await gateway.execute(builder("/nodes", method="POST"))

    assert response.status == 200
    # "url" is stripped, everything else reaches the transport untouched
    assert transport.calls == [("/nodes", {"headers": {"X-CSRF-Token": "tok1"}, "method": "POST"})]
    assert not gateway.recovering


async def test_redirect_status_counts_as_ok(transport, respond, builder):
    transport.add("/moved", respond(302))
    gateway = AuthGateway(transport)

    response = await gateway.fetch(builder("/moved"))

    assert response.status == 302


async def test_not_found_resolves_instead_of_failing(transport, respond, builder):
    transport.add("/missing", respond(404, "nope"))
    gateway = AuthGateway(transport)

    response = await gateway.execute(builder("/missing"))

    assert response.status == 404
    assert not gateway.recovering
    assert gateway.pending == 0


async def test_server_error_rejects_with_body_text(transport, respond, builder):
    transport.add("/flaky", respond(503, "down"))
    gateway = AuthGateway(transport)

    with pytest.raises(ServerError) as info:
        await gateway.execute(builder("/flaky"))

    assert str(info.value) == "down"
    assert info.value.status == 503
    assert not gateway.recovering


async def test_transport_failure_rejects_with_raw_reason(transport, builder):
    reason = ConnectionError("offline")
    transport.add("/nodes", reason)
    gateway = AuthGateway(transport)

    with pytest.raises(ConnectionError) as info:
        await gateway.execute(builder("/nodes"))

    assert info.value is reason
    assert not gateway.recovering


async def test_builder_errors_land_in_the_future(transport):
    gateway = AuthGateway(transport)

    def broken(token):
        raise ValueError("bad request spec")

    future = gateway.execute(broken)

    with pytest.raises(ValueError, match="bad request spec"):
        await future
    assert transport.calls == []


async def test_spec_without_url_is_rejected(transport):
    gateway = AuthGateway(transport)

    with pytest.raises(ValueError, match="missing 'url'"):
        await gateway.execute(lambda token: {"method": "GET"})


async def test_builder_dict_is_not_mutated(transport, respond):
    transport.add("/shared", respond(200))
    spec = {"url": "/shared", "method": "GET"}
    gateway = AuthGateway(transport)

    await gateway.execute(lambda token: spec)

    assert spec == {"url": "/shared", "method": "GET"}


async def test_normal_requests_settle_independently(transport, respond, builder, settle):
    transport.gates["/slow"] = asyncio.Event()
    transport.add("/slow", respond(200, "slow"))
    transport.add("/fast", respond(500, "boom"))
    gateway = AuthGateway(transport)

    slow = gateway.execute(builder("/slow"))
    fast = gateway.execute(builder("/fast"))
    await settle()

    assert fast.done() and isinstance(fast.exception(), ServerError)
    assert not slow.done()

    transport.gates["/slow"].set()
    assert (await slow).body == "slow"
