"""exception taxonomy for the gateway.

only real failures are exceptions. a 401 turns into suspension + replay and
any other non-ok status (404 etc.) resolves normally, so neither lives here.
"""


class GatewayError(Exception):
    """base class for everything the gateway raises on its own."""


class TransportError(GatewayError):
    """no response was obtained.

    raised by transports that have no native exception type of their own
    (e.g. `TabTransport`). `HttpxTransport` lets httpx errors through untouched.
    """


class ServerError(GatewayError):
    """server answered with status >= 500.

    the message is the response body text, so `str(error)` is what the
    server said.

    :param text: response body text.
    :param status: http status code.
    :param response: the transport response object.
    """
    text: str
    status: int | None

    def __init__(self, text: str, status: int | None = None, response=None):
        super().__init__(text)
        self.text = text
        self.status = status
        self.response = response


class DecodeError(GatewayError):
    """response body was not valid json.

    :param message: readable text extracted from the body (markup stripped).
    :param body: raw body text.
    """
    body: str

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class GatewayFailure(GatewayError):
    """raised by `AuthGateway.surface_failure()` after the failure handler ran.

    interrupts whatever continuation the caller chained after the request.
    """
