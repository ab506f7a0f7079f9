"""Transaction aware access logging.

Every request gets a transaction ID (taken from ``X-Request-Id`` or freshly
generated), echoed back in the response headers and made available to the
application. Once the application returns, one structured record describing
the request and its outcome is written to the access logger.
"""
from __future__ import annotations

import time
from typing import Callable, Iterable
from urllib.parse import quote, urlsplit

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from http_handlers.core.logging import StructuredLogger, get_logger
from http_handlers.core.transaction import (
    TRANSACTION_ID_HEADER,
    TRANSACTION_ID_KEY,
    get_transaction_id_from_headers,
    new_transaction_id,
    transaction_id_context,
)
from http_handlers.middleware.headers import DEFAULT_HEADER_POLICY, HeaderPolicy, HeaderPredicate
from http_handlers.middleware.tracker import wrap_send
from http_handlers.middleware.uuids import get_uuids_from_uri

_RESPONSE_START_TYPES = frozenset(
    {"http.response.start", "websocket.http.response.start", "websocket.accept"}
)


def split_host_port(address: str) -> str:
    """Host part of ``host:port``; the address unmodified when it has no parseable port."""
    if address.startswith("["):
        end = address.find("]")
        if end == -1 or address[end + 1:end + 2] != ":":
            return address
        return address[1:end]
    host, sep, _ = address.rpartition(":")
    if not sep or ":" in host:
        return address
    return host


def client_host(scope: Scope) -> str:
    client = scope.get("client")
    if not client:
        return ""
    return split_host_port(str(client[0]))


def request_uri(scope: Scope) -> str:
    query = (scope.get("query_string") or b"").decode("latin-1")

    # CONNECT over HTTP/2 identifies its target by the authority
    if str(scope.get("http_version", "")).startswith("2") and scope.get("method") == "CONNECT":
        uri = Headers(raw=scope.get("headers") or []).get("host", "")
    else:
        uri = (scope.get("raw_path") or b"").decode("latin-1")
        if uri and query:
            uri = f"{uri}?{query}"

    if not uri:
        uri = quote(scope.get("path") or "/")
        if query:
            uri = f"{uri}?{query}"
    return uri


def request_username(scope: Scope) -> str:
    """Userinfo name of an absolute-form request target, or ``""``.

    ASGI carries no parsed userinfo, so this relies on the server keeping
    the absolute-form target in ``raw_path``. h11 does. uvicorn's httptools
    protocol keeps only the path, and there the username is always empty.
    """
    target =(scope.get("raw_path") or b"").decode("latin-1")
    if "://" not in target:
        return ""
    return urlsplit(target).username or ""


def write_request_log(
    logger: StructuredLogger,
    scope: Scope,
    transaction_id: str,
    response_time: float,
    status: int,
    size: int,
    policy: HeaderPolicy = DEFAULT_HEADER_POLICY,
) -> None:
    """Write the access record for one request.

    ``response_time`` is in seconds. Fields with an empty string value are
    left out of the record, as are ``headers`` and ``uuid`` when there is
    nothing to report.
    """
    headers = Headers(raw=scope.get("headers") or [])
    uri = request_uri(scope)

    fields = {
        "responsetime": int(response_time * 1000),
        "host": client_host(scope),
        "username": request_username(scope),
        "method": scope.get("method", "GET"),
        TRANSACTION_ID_KEY: transaction_id,
        "uri": uri,
        "protocol": f"HTTP/{scope.get('http_version', '1.1')}",
        "status": status,
        "size": size,
        "referer": headers.get("referer", ""),
        "userAgent": headers.get("user-agent", ""),
    }
    entry = logger.with_fields({key: value for key, value in fields.items() if value != ""})

    logged_headers = policy.redact(scope.get("headers") or [])
    if logged_headers:
        entry = entry.with_field("headers", logged_headers)

    uuids = get_uuids_from_uri(uri)
    if uuids:
        entry = entry.with_uuid(",".join(uuids))

    entry.info("")


class TransactionAwareRequestLoggingMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        logger: StructuredLogger | None = None,
        *,
        filter_headers: Iterable[str] = (),
        header_filter: HeaderPredicate | None = None,
        id_factory: Callable[[], str] = new_transaction_id,
        policy: HeaderPolicy = DEFAULT_HEADER_POLICY,
    ):
        self.app = app
        self.logger = logger or get_logger()
        self.policy = policy.extend(filter_headers, header_filter)
        self.id_factory = id_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        headers = Headers(raw=scope.get("headers") or [])
        transaction_id = get_transaction_id_from_headers(headers, self.id_factory)
        scope.setdefault("state", {})[TRANSACTION_ID_KEY] = transaction_id

        async def send_with_transaction_id(message: Message) -> None:
            if message["type"] in _RESPONSE_START_TYPES:
                message.setdefault("headers", [])
                MutableHeaders(scope=message)[TRANSACTION_ID_HEADER] = transaction_id
            await send(message)

        tracker = wrap_send(scope, send_with_transaction_id)

        with transaction_id_context(transaction_id):
            start = time.perf_counter()
            await self.app(scope, receive, tracker)
            response_time = time.perf_counter() - start

        write_request_log(
            self.logger,
            scope,
            transaction_id,
            response_time,
            tracker.status,
            tracker.size,
            self.policy,
        )
