"""Tests for the process-wide client registry."""

import httpx
import pytest

from orderstream.core.clients import ClientRegistry


class TestClientRegistry:
    def test_http_client_is_built_once(self, settings):
        with ClientRegistry(settings) as registry:
            first = registry.http()
            assert registry.http() is first
            assert isinstance(first, httpx.Client)
            assert str(first.base_url).startswith(settings.search_endpoint)

    def test_boto_client_per_service(self, settings):
        with ClientRegistry(settings) as registry:
            s3 = registry.boto("s3")
            assert registry.boto("s3") is s3
            assert registry.boto("stepfunctions") is not s3
            assert s3.meta.region_name == settings.region

    def test_closed_registry_refuses_new_handles(self, settings):
        registry = ClientRegistry(settings)
        client = registry.http()
        registry.close()
        assert client.is_closed
        with pytest.raises(RuntimeError):
            registry.http()

    def test_close_is_idempotent(self, settings):
        registry = ClientRegistry(settings)
        registry.close()
        registry.close()
