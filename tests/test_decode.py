import pytest

from authgateway import AuthGateway, DecodeError
from authgateway.utils import html_to_text

pytestmark = [
    pytest.mark.decode,
]


@pytest.mark.asyncio
async def test_parse_json(respond):
    data = await AuthGateway.parse_json(respond(200, '{"nodes": [1, 2]}'))

    assert data == {"nodes": [1, 2]}


@pytest.mark.asyncio
async def test_html_error_page_becomes_readable_message(respond):
    with pytest.raises(DecodeError) as info:
        await AuthGateway.parse_json(respond(200, "<div>Session expired</div>"))

    assert str(info.value) == "Session expired"
    assert info.value.body == "<div>Session expired</div>"


@pytest.mark.asyncio
async def test_plain_text_body_is_used_verbatim(respond):
    with pytest.raises(DecodeError, match="^oops$"):
        await AuthGateway.parse_json(respond(200, "oops"))


@pytest.mark.asyncio
async def test_markup_without_text_falls_back_to_raw_body(respond):
    with pytest.raises(DecodeError) as info:
        await AuthGateway.parse_json(respond(200, "<div><br></div>"))

    assert str(info.value) == "<div><br></div>"


def test_html_to_text_skips_invisible_content():
    html = """
    <html>
      <head><title>Error</title><style>body { color: red }</style></head>
      <body>
        <script>console.log("x")</script>
        <h1>Internal   Server
        Error</h1>
        <p>Please <b>try</b> again.</p>
      </body>
    </html>
    """

    assert html_to_text(html) == "Internal Server Error Please try again."


def test_html_to_text_empty():
    assert html_to_text("") == ""
