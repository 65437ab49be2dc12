import asyncio
import logging
from authgateway import AuthGateway, HttpxTransport, GatewayFailure

BASE_URL = "https://cms.example.com"

def update_node(node_id: str, title: str):
    # builders receive the token at send time, so replays pick up the new one
    def builder(token):
        return {
            "url": f"/api/nodes/{node_id}",
            "method": "PATCH",
            "headers": {"X-CSRF-Token": token},
            "json": {"title": title},
        }
    return builder

async def main():
    logging.basicConfig(level=logging.INFO)
    async with HttpxTransport(base_url=BASE_URL) as transport:
        gateway = AuthGateway(transport, token="initial-token")

        async def login():
            # a real app would show a login form here and fetch a new token
            await asyncio.sleep(1)
            gateway.complete_recovery("token-after-login")

        gateway.register_auth_failure_handler(login)
        gateway.register_failure_handler(lambda text: print(f"error: {text}"))

        # both run in parallel; if the session expired they're parked and replayed in order
        requests = [
            gateway.fetch(update_node("home", "Home")),
            gateway.fetch(update_node("about", "About us")),
        ]
        for request in asyncio.as_completed(requests):
            try:
                response = await request
                print(await gateway.parse_json(response))
            except GatewayFailure:
                pass
            except Exception as error:
                try:
                    gateway.surface_failure(error)
                except GatewayFailure:
                    pass

        await gateway.wait_for_replay()

if __name__ == "__main__":
    asyncio.run(main())
