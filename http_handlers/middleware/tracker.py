"""Response tracking for ASGI ``send`` callables.

A tracker sits between the application and the server's ``send`` and records
the response status and the number of body bytes the server accepted. Every
message is forwarded as is, one at a time, so streaming responses still
stream.

Which optional ASGI capabilities a tracker handles is decided once, when the
request is wrapped, by looking at the scope type and the extensions the server
advertises. See ``wrap_send``.
"""
from __future__ import annotations

import os
from typing import Awaitable, Callable

from starlette.types import Message, Scope, Send

HTTP_200_OK = 200
HTTP_101_SWITCHING_PROTOCOLS = 101

PATHSEND_EXTENSION = "http.response.pathsend"
DENIAL_RESPONSE_EXTENSION = "websocket.http.response"


class ResponseTracker:
    handled: dict[str, str] = {
        "http.response.start": "_start",
        "http.response.body": "_body",
    }

    def __init__(self, send: Send):
        self._send = send
        self._status = 0
        self._size = 0

    @property
    def status(self) -> int:
        return self._status

    @property
    def size(self) -> int:
        return self._size

    def supports(self, message_type: str) -> bool:
        return message_type in self.handled

    async def __call__(self, message: Message) -> None:
        name = self.handled.get(message["type"])
        if name is None:
            await self._send(message)
            return
        handler: Callable[[Message], Awaitable[None]] = getattr(self, name)
        await handler(message)

    async def _start(self, message: Message) -> None:
        if self._status == 0:
            self._status = message["status"]
        await self._send(message)

    async def _body(self, message: Message) -> None:
        if self._status == 0:
            # no start message seen yet
            self._status = HTTP_200_OK
        await self._send(message)
        self._size += len(message.get("body", b""))


class PathSendTracker(ResponseTracker):
    handled = {
        **ResponseTracker.handled,
        "http.response.pathsend": "_pathsend",
    }

    async def _pathsend(self, message: Message) -> None:
        if self._status == 0:
            self._status = HTTP_200_OK
        await self._send(message)
        self._size += os.path.getsize(message["path"])


class WebSocketTracker(ResponseTracker):
    handled = {
        "websocket.accept": "_accept",
    }

    async def _accept(self, message: Message) -> None:
        await self._send(message)
        if self._status == 0:
            self._status = HTTP_101_SWITCHING_PROTOCOLS


class DenialResponseTracker(WebSocketTracker):
    handled = {
        **WebSocketTracker.handled,
        "websocket.http.response.start": "_start",
        "websocket.http.response.body": "_body",
    }


def wrap_send(scope: Scope, send: Send) -> ResponseTracker:
    extensions = scope.get("extensions") or {}
    if scope["type"] == "websocket":
        if DENIAL_RESPONSE_EXTENSION in extensions:
            return DenialResponseTracker(send)
        return WebSocketTracker(send)
    if PATHSEND_EXTENSION in extensions:
        return PathSendTracker(send)
    return ResponseTracker(send)
