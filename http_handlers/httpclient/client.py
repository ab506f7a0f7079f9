"""
Outbound HTTP client that identifies the calling service and forwards the
transaction ID of the request being served
"""
from __future__ import annotations

from typing import Any

import httpx

from http_handlers.core.config import Settings, settings
from http_handlers.core.transaction import TRANSACTION_ID_HEADER, transaction_id_var


class ServiceClient:
    def __init__(
        self,
        client: httpx.Client | None = None,
        service_code: str = "",
        version: str = "",
        runbook: str = "",
    ):
        self.client = client or httpx.Client()
        self.service_code = service_code
        self.version = version
        self.runbook = runbook

    @classmethod
    def from_settings(cls, config: Settings = settings, client: httpx.Client | None = None) -> ServiceClient:
        """Identify outbound calls with ``APP_NAME``, ``APP_VERSION`` and ``RUNBOOK_URL``."""
        return cls(
            client,
            service_code=config.app_name,
            version=config.app_version,
            runbook=config.runbook_url,
        )

    @property
    def user_agent(self) -> str:
        agent = f"{self.service_code}/{self.version}"
        if self.runbook:
            agent = f"{agent} (+{self.runbook})"
        return agent

    def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        # an explicitly empty User-Agent is left alone
        if "user-agent" not in request.headers:
            request.headers["User-Agent"] = self.user_agent

        if TRANSACTION_ID_HEADER not in request.headers:
            transaction_id = transaction_id_var.get()
            if transaction_id:
                request.headers[TRANSACTION_ID_HEADER] = transaction_id

        return self.client.send(request, **kwargs)

    def request(self, method: str, url: httpx.URL | str, **kwargs: Any) -> httpx.Response:
        caller_headers = httpx.Headers(kwargs.get("headers"))
        request = self.client.build_request(method, url, **kwargs)
        if "user-agent" not in caller_headers:
            request.headers["User-Agent"] = self.user_agent
        return self.send(request)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> ServiceClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
