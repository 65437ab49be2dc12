import asyncio
import logging
import nodriver
from authgateway import AuthGateway, TabTransport

BACKEND = "https://cms.example.com/neos"

async def main():
    logging.basicConfig(level=logging.INFO)
    browser = await nodriver.start()
    # requests ride this tab's cookies + origin
    tab = await browser.get(BACKEND)
    gateway = AuthGateway(TabTransport(tab))

    async def login():
        # the user logs in inside the same window; read the fresh token from the page
        await tab.get(BACKEND)
        token = await tab.evaluate("document.querySelector('meta[name=csrf-token]')?.content")
        gateway.complete_recovery(token)

    gateway.register_auth_failure_handler(login)
    gateway.set_token(await tab.evaluate("document.querySelector('meta[name=csrf-token]')?.content"))

    response = await gateway.fetch(lambda token: {
        "url": "/neos/service/data-source/nodes",
        "headers": {"X-CSRF-Token": token, "Accept": "application/json"},
        "credentials": "include",
    })
    print(await gateway.parse_json(response))
    browser.stop()

if __name__ == "__main__":
    asyncio.run(main())
