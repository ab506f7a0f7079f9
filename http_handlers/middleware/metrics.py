import threading
import weakref

from prometheus_client import CollectorRegistry, Summary
from prometheus_client.metrics import MetricWrapperBase
from starlette.types import ASGIApp, Receive, Scope, Send

REQUEST_DURATION_METRIC = "http_handlers_request_duration_seconds"

_lock = threading.Lock()
_timers: "weakref.WeakKeyDictionary[CollectorRegistry, dict[str, MetricWrapperBase]]" = (
    weakref.WeakKeyDictionary()
)


def _registered(registry: CollectorRegistry, name: str) -> MetricWrapperBase | None:
    collector = registry._names_to_collectors.get(name)
    if collector is None:
        return None
    if not isinstance(collector, MetricWrapperBase) or tuple(collector._labelnames) != ("method",):
        raise ValueError(
            f"metric {name!r} is already registered and is not a timer labelled by method"
        )
    return collector


def _timer(registry: CollectorRegistry, name: str) -> MetricWrapperBase:
    with _lock:
        timers = _timers.setdefault(registry, {})
        timer = timers.get(name)
        if timer is None:
            timer = _registered(registry, name) or Summary(
                name,
                "Time spent handling HTTP requests, by method",
                ["method"],
                registry=registry,
            )
            timers[name] = timer
        return timer


def request_timer(registry: CollectorRegistry, method: str, name: str = REQUEST_DURATION_METRIC):
    """Get or register the timer of ``method`` requests in ``registry``.

    A collector already registered under ``name`` is reused when it is a
    summary or histogram whose only label is ``method``. Any other collector
    under that name raises ``ValueError``.
    """
    return _timer(registry, name).labels(method=method)


class HTTPMetricsMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        registry: CollectorRegistry,
        metric_name: str = REQUEST_DURATION_METRIC,
    ):
        self.app = app
        self.registry = registry
        self.metric_name = metric_name
        # a clashing name fails when the stack is built, not per request
        _timer(registry, metric_name)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        with request_timer(self.registry, scope["method"], self.metric_name).time():
            await self.app(scope, receive, send)
