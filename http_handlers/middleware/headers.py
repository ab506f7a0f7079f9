"""Request header redaction for access logs."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from http_handlers.core.transaction import TRANSACTION_ID_HEADER

HeaderPredicate = Callable[[str], bool]

DEFAULT_DENIED_HEADERS = frozenset(
    name.lower()
    for name in (
        "User-Agent",
        "Referer",
        TRANSACTION_ID_HEADER,
        "X-Api-Key",
        # CDN and proxy housekeeping
        "X-Varnish",
        "X-Timer",
        "Connection",
        "Content-Length",
        "Cdn-Loop",
    )
)
DEFAULT_DENIED_PREFIXES = ("fastly-",)


def canonical_header_key(name: str) -> str:
    """``x-custom-header`` -> ``X-Custom-Header``"""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def _text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return value


@dataclass(frozen=True)
class HeaderPolicy:
    denied: frozenset[str] = DEFAULT_DENIED_HEADERS
    denied_prefixes: tuple[str, ...] = DEFAULT_DENIED_PREFIXES
    predicate: HeaderPredicate | None = field(default=None, compare=False)

    def extend(
        self,
        names: Iterable[str] = (),
        predicate: HeaderPredicate | None = None,
    ) -> HeaderPolicy:
        """Return a policy that also denies ``names`` and whatever ``predicate`` rejects.

        ``predicate`` gets the canonical header name and returns True for
        headers that must not be logged.
        """
        combined = self.predicate or predicate
        if self.predicate is not None and predicate is not None:
            first, second = self.predicate, predicate

            def combined(name: str) -> bool:
                return first(name) or second(name)

        return replace(
            self,
            denied=self.denied | {n.lower() for n in names},
            predicate=combined,
        )

    def allowed(self, name: str | bytes) -> bool:
        lowered = _text(name).lower()
        if lowered in self.denied or lowered.startswith(self.denied_prefixes):
            return False
        if self.predicate is not None and self.predicate(canonical_header_key(lowered)):
            return False
        return True

    def redact(self, items: Iterable[tuple[str | bytes, str | bytes]]) -> dict[str, str]:
        """Headers safe to log, values of repeated headers joined with ", "."""
        values: dict[str, list[str]] = {}
        for name, value in items:
            if not self.allowed(name):
                continue
            values.setdefault(canonical_header_key(_text(name)), []).append(_text(value))
        return {name: ", ".join(vals) for name, vals in values.items()}


DEFAULT_HEADER_POLICY = HeaderPolicy()
