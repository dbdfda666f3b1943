"""Request middleware -- request ids and timing for every HTTP request.

Pure ASGI (not BaseHTTPMiddleware), so streaming responses and lifespan
events pass through untouched.
"""

import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-request-id"
RESPONSE_TIME_HEADER = b"x-response-time-ms"


class RequestIDMiddleware:
    """Stamp ``X-Request-ID`` and ``X-Response-Time-Ms`` on every response.

    A client-supplied request id is reused so that a chat turn can be
    traced across services; otherwise a UUID-4 is generated.  The id is
    exposed to handlers as ``request.state.request_id``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = dict(scope.get("headers", [])).get(REQUEST_ID_HEADER, b"").decode()
        request_id = incoming or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        started = time.monotonic()

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed_ms = (time.monotonic() - started) * 1000.0
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode()))
                headers.append((RESPONSE_TIME_HEADER, f"{elapsed_ms:.1f}".encode()))
                message = {**message, "headers": headers}
                logger.debug(
                    "%s %s -> %s in %.1fms [request_id=%s]",
                    scope.get("method"), scope.get("path"), message.get("status"),
                    elapsed_ms, request_id,
                )
            await send(message)

        await self.app(scope, receive, send_with_headers)
