"""Tests for the structlog processors installed by configure_structlog."""

import pytest
from asgi_correlation_id.context import correlation_id

from fixy.core.logging import QUIET_LOGGERS, REDACTED, add_correlation_id, logging_config, redact_credentials

pytestmark = pytest.mark.unit


def test_credential_values_are_masked():
    event = redact_credentials(None, "info", {"event": "byok_stored", "api_key": "sk-live-123", "provider": "openai"})

    assert event["api_key"] == REDACTED
    assert event["provider"] == "openai"


def test_empty_credential_values_are_left_alone():
    event = redact_credentials(None, "info", {"event": "platform_key_missing", "credential": None})

    assert event["credential"] is None


def test_correlation_id_is_attached_inside_a_request():
    token = correlation_id.set("req-42")
    try:
        event = add_correlation_id(None, "info", {"event": "reply_delivered"})
    finally:
        correlation_id.reset(token)

    assert event["correlation_id"] == "req-42"


def test_correlation_id_absent_outside_a_request():
    assert "correlation_id" not in add_correlation_id(None, "info", {"event": "credit_reset_run_completed"})


def test_sdk_loggers_are_quieted():
    config = logging_config("INFO", renderer=object(), pre_chain=[])

    assert config["root"]["level"] == "INFO"
    for name in QUIET_LOGGERS:
        assert config["loggers"][name] == {"level": "WARNING"}
