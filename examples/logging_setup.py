import asyncio
import logging
from authgateway import AuthGateway, HttpxTransport

# show how to raise log level beyond default warnings/errors
async def main():
    logging.basicConfig(level=logging.DEBUG)
    async with HttpxTransport(base_url="https://example.com") as transport:
        gateway = AuthGateway(transport)
        await gateway.fetch(lambda token: {"url": "/"})

if __name__ == "__main__":
    asyncio.run(main())
