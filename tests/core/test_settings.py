"""Tests for OrderStreamSettings."""

import pytest
from pydantic import ValidationError

from orderstream.core.settings import OrderStreamSettings


class TestDefaults:
    def test_defaults(self, settings):
        assert settings.partition_key == "orderId"
        assert settings.search_index == "orders"
        assert settings.workflow_timeout_s == 300.0
        assert settings.buffer_interval_s == 60.0
        assert settings.buffer_size_threshold_bytes == 1024 * 1024
        assert settings.tracking_id == ""
        assert settings.notification_channel == "log"
        assert settings.dedupe_window == 10_000


class TestEnvironment:
    def test_env_prefix(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERSTREAM_SEARCH_INDEX", "orders-v2")
        monkeypatch.setenv("ORDERSTREAM_BUFFER_SIZE_THRESHOLD_MB", "0.5")
        loaded = OrderStreamSettings()
        assert loaded.search_index == "orders-v2"
        assert loaded.buffer_size_threshold_bytes == 512 * 1024

    def test_rejects_unknown_log_level(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERSTREAM_LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            OrderStreamSettings()

    def test_rejects_non_positive_timeout(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERSTREAM_WORKFLOW_TIMEOUT_S", "0")
        with pytest.raises(ValidationError):
            OrderStreamSettings()

    def test_rejects_unknown_notification_channel(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERSTREAM_NOTIFICATION_CHANNEL", "pager")
        with pytest.raises(ValidationError):
            OrderStreamSettings()

    def test_rejects_negative_dedupe_window(self, settings, monkeypatch):
        monkeypatch.setenv("ORDERSTREAM_DEDUPE_WINDOW", "-1")
        with pytest.raises(ValidationError):
            OrderStreamSettings()
