from fastapi import FastAPI
from prometheus_client import REGISTRY, CollectorRegistry
from starlette.applications import Starlette

from http_handlers.core.config import Settings, settings
from http_handlers.core.logging import StructuredLogger, configure_logging
from http_handlers.middleware.gunzip import RequestBodyGzipMiddleware
from http_handlers.middleware.metrics import HTTPMetricsMiddleware
from http_handlers.middleware.request_logging import TransactionAwareRequestLoggingMiddleware


def install_handlers(
    app: Starlette,
    *,
    registry: CollectorRegistry | None = None,
    logger: StructuredLogger | None = None,
    config: Settings = settings,
) -> Starlette:
    # the last middleware added is the outermost one
    app.add_middleware(RequestBodyGzipMiddleware)
    app.add_middleware(HTTPMetricsMiddleware, registry=registry or REGISTRY)
    app.add_middleware(
        TransactionAwareRequestLoggingMiddleware,
        logger=logger,
        filter_headers=config.denied_headers,
    )
    return app


def create_app(config: Settings = settings, **kwargs) -> FastAPI:
    configure_logging(
        config.log_level,
        service_name=config.app_name,
        json_format=config.log_format == "json",
    )
    app = FastAPI(title=config.app_name, version=config.app_version)
    return install_handlers(app, config=config, **kwargs)
