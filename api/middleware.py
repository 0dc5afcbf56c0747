"""CORS handling for browser-based MCP clients."""

from starlette.types import ASGIApp, Message, Receive, Scope, Send

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, Mcp-Session-Id",
    "Access-Control-Max-Age": "86400",
}


class CORSHeadersMiddleware:
    """Answer every preflight with 204 and stamp CORS headers on all responses.

    Pure ASGI so streamed SSE bodies pass through untouched.
    """

    def __init__(self, app: ASGIApp):
        self.app = app
        self._raw_headers = [
            (k.lower().encode("latin-1"), v.encode("latin-1"))
            for k, v in CORS_HEADERS.items()
        ]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            await send(
                {
                    "type": "http.response.start",
                    "status": 204,
                    "headers": list(self._raw_headers),
                }
            )
            await send({"type": "http.response.body", "body": b""})
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                existing = {k.lower() for k, _ in message.get("headers", [])}
                headers = list(message.get("headers", []))
                headers.extend(
                    (k, v) for k, v in self._raw_headers if k not in existing
                )
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_cors)
