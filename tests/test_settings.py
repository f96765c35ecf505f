"""
Tests for settings, logging, reconnect backoff, exceptions and metrics export.
"""

import json
import logging

import pytest
from hypothesis import given, settings as hypothesis_settings, strategies as st

from shared.config.logging import (
    DevelopmentFormatter,
    StructuredFormatter,
    get_logger,
    mask_user_id,
)
from shared.config.settings import Settings
from shared.utils.exceptions import (
    ConnectionFailedError,
    ConnectionTimeoutError,
    MultiplexerError,
    SubscriptionConnectError,
)
from ws_multiplexer.components.core import dependencies
from ws_multiplexer.components.core.dependencies import check_settings
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.components.metrics.prometheus import generate_prometheus_metrics
from ws_multiplexer.components.resilience.retry import (
    ReconnectBackoff,
    RetryConfig,
    calculate_delay_with_jitter,
    create_reconnect_retry_config,
    should_retry,
)
from ws_multiplexer.components.subscriptions.keys import create_key


class TestSettings:
    """Settings loading and validation."""

    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.mux_connection_timeout == 30.0
        assert config.mux_unsubscribe_debounce == 0.1
        assert config.multiplexer_url == f"{config.mux_base_ws_url}wsMultiplexer"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("MUX_CONNECTION_TIMEOUT", "5")
        monkeypatch.setenv("MUX_AUTO_RECONNECT", "true")
        config = Settings(_env_file=None)
        assert config.mux_connection_timeout == 5.0
        assert config.mux_auto_reconnect is True

    def test_valid_settings_have_no_errors(self):
        config = Settings(_env_file=None, mux_base_ws_url="wss://dash.example/", environment="production")
        assert config.validate_settings() == []

    @pytest.mark.parametrize("overrides, fragment", [
        ({"mux_connection_timeout": 0}, "MUX_CONNECTION_TIMEOUT"),
        ({"mux_unsubscribe_debounce": 60.0}, "MUX_UNSUBSCRIBE_DEBOUNCE"),
        ({"mux_base_ws_url": "http://localhost:4466/"}, "ws:// or wss://"),
        ({"mux_max_frame_size": -1}, "MUX_MAX_FRAME_SIZE"),
        ({"mux_auto_reconnect": True, "mux_reconnect_max_attempts": 0}, "MUX_RECONNECT_MAX_ATTEMPTS"),
        ({"environment": "production", "mux_base_ws_url": "ws://dash.example/"}, "wss://"),
    ])
    def test_invalid_settings(self, overrides, fragment):
        config = Settings(_env_file=None, **overrides)
        errors = config.validate_settings()
        assert any(fragment in e for e in errors)


class TestRetry:
    """Reconnect backoff."""

    @given(attempt=st.integers(min_value=0, max_value=30))
    @hypothesis_settings(max_examples=50)
    def test_delay_stays_within_jitter_of_cap(self, attempt):
        """Property: delay never exceeds the cap plus jitter and is never negative."""
        config = create_reconnect_retry_config(initial_delay=1.0, max_delay=30.0)
        delay = calculate_delay_with_jitter(attempt, config)
        assert 0 <= delay <= 30.0 * (1 + config.jitter_factor)

    def test_delay_grows_exponentially_without_jitter(self):
        config = RetryConfig(initial_delay=1.0, max_delay=30.0, jitter_factor=0)
        assert [calculate_delay_with_jitter(i, config) for i in range(6)] == [1, 2, 4, 8, 16, 30]

    @pytest.mark.parametrize("kwargs", [
        {"initial_delay": 0},
        {"initial_delay": 5.0, "max_delay": 1.0},
        {"backoff_base": 0.5},
        {"jitter_factor": 2},
        {"max_attempts": 0},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)

    def test_should_retry(self):
        assert should_retry(0, 3)
        assert should_retry(2, 3)
        assert not should_retry(3, 3)

    def test_backoff_exhausts_and_resets(self):
        backoff = ReconnectBackoff(RetryConfig(initial_delay=0.5, max_delay=1.0, jitter_factor=0, max_attempts=3))

        delays = []
        while not backoff.exhausted:
            delays.append(backoff.next_delay())

        assert delays == [0.5, 1.0, 1.0]
        backoff.reset()
        assert backoff.attempt == 0
        assert not backoff.exhausted


class TestExceptions:
    """Exception hierarchy."""

    def test_timeout_is_a_connection_failure(self):
        error = ConnectionTimeoutError("ws://x/wsMultiplexer", timeout=30.0)
        assert isinstance(error, ConnectionFailedError)
        assert isinstance(error, MultiplexerError)
        assert "timed out after 30s" in error.detail
        assert error.url == "ws://x/wsMultiplexer"

    def test_subscription_error_carries_disposer(self):
        disposer = lambda: None  # noqa: E731
        key = create_key("c1", "/api/v1/pods")
        error = SubscriptionConnectError(key, disposer, reason="refused")
        assert error.disposer is disposer
        assert error.key == key
        assert str(key) in error.detail
        assert error.context == {"key": str(key)}

    def test_mask_user_id(self):
        assert mask_user_id(None) == "<no-user>"
        assert mask_user_id("") == "<no-user>"
        assert "alice" not in mask_user_id("alice")


class TestPrometheus:
    """Exposition output."""

    def test_counters_from_collector(self):
        metrics = MetricsCollector()
        metrics.record_connect_attempt()
        metrics.record_connect_failure(timeout=True)
        metrics.record_discarded("unknown_type")

        output = generate_prometheus_metrics({"metrics": metrics.get_snapshot()})

        assert "# TYPE wsmux_connect_attempts_total counter" in output
        assert "wsmux_connect_attempts_total 1" in output
        assert "wsmux_connect_timeouts_total 1" in output
        assert 'wsmux_frames_discarded_total{reason="unknown_type"} 1' in output
        assert "wsmux_connection_open 0" in output

    def test_custom_prefix(self):
        output = generate_prometheus_metrics({}, prefix="dashboard")
        assert "dashboard_subscriptions_active 0" in output

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.record_delivered(3)
        metrics.reset()
        assert metrics.get_snapshot()["dispatch_delivered"] == 0


class TestLogging:
    """Keyword context on log records."""

    def test_context_reaches_both_formatters(self, caplog):
        logger = get_logger("ws_multiplexer.test_logging")
        with caplog.at_level(logging.INFO, logger="ws_multiplexer.test_logging"):
            logger.info("Subscription opened", key="c1/api/v1/pods?", listeners=2)

        record = caplog.records[-1]
        assert record.context == {"key": "c1/api/v1/pods?", "listeners": 2}

        line = DevelopmentFormatter().format(record)
        assert "[c1/api/v1/pods?] listeners=2" in line

        entry = json.loads(StructuredFormatter().format(record))
        assert entry["msg"] == "Subscription opened"
        assert entry["context"]["listeners"] == 2


class TestStartupCheck:
    """Settings are checked before the default multiplexer is built."""

    def test_problems_are_logged_outside_production(self, caplog):
        config = Settings(_env_file=None, mux_max_frame_size=-1)

        with caplog.at_level(logging.ERROR, logger="ws_multiplexer.components.core.dependencies"):
            errors = check_settings(config)

        assert len(errors) == 1
        assert any("MUX_MAX_FRAME_SIZE" in r.getMessage() for r in caplog.records)

    def test_valid_settings_pass(self):
        assert check_settings(Settings(_env_file=None)) == []

    def test_production_refuses_to_build_default_multiplexer(self, monkeypatch):
        config = Settings(_env_file=None, environment="production", mux_base_ws_url="ws://dash.example/")
        monkeypatch.setattr(dependencies, "get_settings", lambda: config)

        with pytest.raises(RuntimeError, match="wss://"):
            dependencies.get_multiplexer()

        assert dependencies._multiplexer is None
