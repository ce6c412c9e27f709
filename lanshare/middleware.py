import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from lanshare.errors import PayloadTooLarge

logger = logging.getLogger("lanshare.admission")


class UploadSizeLimitMiddleware:
    """
    Caps the request body of ``POST /upload`` while it is being received.

    A ``Content-Length`` above the cap is refused before any byte is read.
    Bodies without one (chunked transfer) are counted as they arrive and cut
    off as soon as the running total passes the cap, so the multipart parser
    never spools more than ``max_bytes`` to temporary files.
    """

    def __init__(self, app: ASGIApp, max_bytes: int, path: str = "/upload"):
        self.app = app
        self.max_bytes = max_bytes
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.path:
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        client_host = client[0] if client else "unknown"

        cl = Headers(scope=scope).get("content-length")
        if cl and cl.isdigit() and int(cl) > self.max_bytes:
            await self._reject(scope, receive, send, f"Request body of {cl} bytes exceeds the upload limit", client_host)
            return

        received = 0
        rejected = False

        async def limited_receive() -> Message:
            nonlocal received, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    rejected = True
                    await self._reject(
                        scope, receive, send,
                        f"Request body exceeded the upload limit of {self.max_bytes} bytes",
                        client_host,
                    )
                    # The handler sees a disconnected client and stops parsing.
                    return {"type": "http.disconnect"}
            return message

        async def guarded_send(message: Message) -> None:
            if not rejected:
                await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except Exception:
            if not rejected:
                raise
            logger.debug("Upload handler aborted after the body limit was hit", exc_info=True)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, detail: str, client_host: str) -> None:
        logger.warning("Rejected upload from %s: %s", client_host, detail)
        exc = PayloadTooLarge(detail)
        response = JSONResponse(status_code=exc.status_code, content=exc.to_envelope())
        await response(scope, receive, send)
