"""Process-wide client handles.

SDK and HTTP clients are expensive to build and safe to share, so each one
is created once per process, on first use, and closed at shutdown. Components
never reach for a module-level global: the registry hands them the handle
when they are wired up.

ARCHITECTURE
────────────
::

    ClientRegistry(settings)
      ├── .http()           ─ httpx.Client for the search index
      ├── .boto(service)    ─ boto3 client per service name
      └── .close()          ─ tear down every handle that was built

Example::

    registry = ClientRegistry(settings)
    bridge = SearchIndexBridge(registry.http(), index=settings.search_index)
    ...
    registry.close()
"""

from __future__ import annotations

import threading
from typing import Any

import boto3
import httpx
from botocore.config import Config

from orderstream.core.logging import get_logger
from orderstream.core.settings import OrderStreamSettings

logger = get_logger(__name__)


class ClientRegistry:
    """Lazily-initialised, process-wide client handles.

    Handles are built at most once under a lock and never replaced; after
    ``close()`` the registry refuses to build new ones.
    """

    def __init__(self, settings: OrderStreamSettings) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._http: httpx.Client | None = None
        self._boto: dict[str, Any] = {}
        self._closed = False

    @property
    def settings(self) -> OrderStreamSettings:
        return self._settings

    def http(self) -> httpx.Client:
        """HTTP client bound to the search endpoint."""
        with self._lock:
            self._ensure_open()
            if self._http is None:
                self._http = httpx.Client(
                    base_url=self._settings.search_endpoint,
                    timeout=self._settings.search_timeout_s,
                    headers={"Content-Type": "application/json"},
                )
                logger.info("clients.http_created", base_url=self._settings.search_endpoint)
            return self._http

    def boto(self, service: str) -> Any:
        """boto3 client for ``service`` (``stepfunctions``, ``s3``, ``ses``...)."""
        with self._lock:
            self._ensure_open()
            client = self._boto.get(service)
            if client is None:
                client_kwargs: dict[str, Any] = {
                    "service_name": service,
                    "region_name": self._settings.region,
                    "config": Config(retries={"max_attempts": 3, "mode": "standard"}),
                }
                if self._settings.endpoint_url:
                    client_kwargs["endpoint_url"] = self._settings.endpoint_url
                client = boto3.client(**client_kwargs)
                self._boto[service] = client
                logger.info("clients.boto_created", service=service, region=self._settings.region)
            return client

    def close(self) -> None:
        """Close every handle that was built."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._http is not None:
                self._http.close()
            for client in self._boto.values():
                client.close()
            logger.info("clients.closed", boto_clients=len(self._boto), http=self._http is not None)
            self._http = None
            self._boto.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("ClientRegistry is closed")

    def __enter__(self) -> ClientRegistry:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
