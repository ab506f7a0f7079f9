import logging
import zlib

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from http_handlers.core.exceptions import GzipDecodeError

logger = logging.getLogger("http_handlers.request")

DEFAULT_MAX_CHUNK_SIZE = 64 * 1024


def _decompressor():
    # gzip container only, no raw deflate or zlib
    return zlib.decompressobj(16 + zlib.MAX_WBITS)


class GzipRequestStream:
    """An ASGI ``receive`` that inflates a gzip request body as it arrives.

    Each message carries at most ``max_chunk_size`` decompressed bytes.
    Concatenated gzip members are read one after the other. A body that
    ends before its last member is complete raises ``GzipDecodeError``, as
    does corrupt data at any point.
    """

    def __init__(self, receive: Receive, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE):
        self.receive = receive
        self.max_chunk_size = max_chunk_size
        self.decompressor = _decompressor()
        self.pending = b""
        self.draining = False
        self.more_body = True
        self.finished = False

    def _decompress(self, data: bytes) -> bytes:
        if self.decompressor.eof:
            if not data:
                return b""
            self.decompressor = _decompressor()
        try:
            chunk = self.decompressor.decompress(data, self.max_chunk_size)
        except zlib.error as exc:
            raise GzipDecodeError() from exc
        if self.decompressor.eof:
            self.pending = self.decompressor.unused_data
            self.draining = False
        else:
            self.pending = self.decompressor.unconsumed_tail
            # output stopped at the limit, zlib may still hold some
            self.draining = len(chunk) == self.max_chunk_size
        return chunk

    async def __call__(self) -> Message:
        while not self.finished:
            if self.pending or self.draining:
                chunk = self._decompress(self.pending)
            elif self.more_body:
                message = await self.receive()
                if message["type"] != "http.request":
                    return message
                self.more_body = message.get("more_body", False)
                chunk = self._decompress(message.get("body", b""))
            else:
                if not self.decompressor.eof:
                    raise GzipDecodeError()
                self.finished = True
                return {"type": "http.request", "body": b"", "more_body": False}
            if chunk:
                return {"type": "http.request", "body": chunk, "more_body": True}
        return await self.receive()


class RequestBodyGzipMiddleware:
    """Turns gzip encoded request bodies into plain ones.

    Only ``Content-Encoding: gzip`` bodies are touched. The body is inflated
    while the app reads it. The first chunk is decompressed before the app
    is called, so a body that is not gzip at all gets a 400 without reaching
    the app. Later decode errors also become a 400 when the app has not
    started its response yet.

    ``Content-Encoding`` and ``Content-Length`` are removed from the request
    scope itself, so middleware further out sees the request as the app saw
    it. Applying the middleware twice is the same as applying it once.
    """

    def __init__(self, app: ASGIApp, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE):
        self.app = app
        self.max_chunk_size = max_chunk_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or Headers(scope=scope).get("content-encoding") != "gzip":
            await self.app(scope, receive, send)
            return

        stream = GzipRequestStream(receive, self.max_chunk_size)
        try:
            first = await stream()
        except GzipDecodeError as exc:
            await self.reject(scope, receive, send, exc)
            return

        headers = MutableHeaders(scope=scope)
        del headers["content-encoding"]
        del headers["content-length"]

        primed = True
        response_started = False

        async def receive_unzipped() -> Message:
            nonlocal primed
            if primed:
                primed = False
                return first
            return await stream()

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive_unzipped, send_wrapper)
        except GzipDecodeError as exc:
            if response_started:
                raise
            await self.reject(scope, receive, send, exc)

    async def reject(self, scope: Scope, receive: Receive, send: Send, exc: GzipDecodeError) -> None:
        logger.warning(
            "gzip_decode_failed method=%s path=%s",
            scope.get("method"),
            scope.get("path"),
        )
        response = PlainTextResponse(exc.message, status_code=exc.status_code)
        await response(scope, receive, send)
