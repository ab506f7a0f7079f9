"""Transaction ID helpers shared by the inbound middleware and the outbound client.

The transaction ID travels between services in the ``X-Request-Id`` header.
Inside a service it is available under ``TRANSACTION_ID_KEY`` on the request
state, and through a context variable for code that has no request at hand.
"""
from __future__ import annotations

import secrets
import string
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Mapping

from starlette.requests import Request

from http_handlers.core.exceptions import TransactionIDNotFoundError

TRANSACTION_ID_HEADER = "X-Request-Id"
TRANSACTION_ID_KEY = "transaction_id"

_ALPHABET = string.ascii_lowercase + string.digits

transaction_id_var: ContextVar[str | None] = ContextVar(TRANSACTION_ID_KEY, default=None)


def new_transaction_id() -> str:
    return "tid_" + "".join(secrets.choice(_ALPHABET) for _ in range(10))


def get_transaction_id_from_headers(
    headers: Mapping[str, str],
    id_factory: Callable[[], str] = new_transaction_id,
) -> str:
    """Return the inbound transaction ID, or a fresh one when the header is missing or empty."""
    transaction_id = headers.get(TRANSACTION_ID_HEADER.lower()) or headers.get(TRANSACTION_ID_HEADER)
    if not transaction_id:
        transaction_id = id_factory()
    return transaction_id


def get_transaction_id(request: Request) -> str | None:
    return getattr(request.state, TRANSACTION_ID_KEY, None)


def get_transaction_id_from_context() -> str:
    transaction_id = transaction_id_var.get()
    if not transaction_id:
        raise TransactionIDNotFoundError()
    return transaction_id


@contextmanager
def transaction_id_context(transaction_id: str) -> Iterator[str]:
    token = transaction_id_var.set(transaction_id)
    try:
        yield transaction_id
    finally:
        transaction_id_var.reset(token)
