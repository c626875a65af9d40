"""Tests for log redaction and payload clipping."""

import json
import logging

import pytest
import structlog

from formula_trigger.utils.logging import (
    REDACTED,
    SecretRedactor,
    clip_payloads,
    setup_logging,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    access = logging.getLogger("aiohttp.access")
    access_level = access.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    access.setLevel(access_level)
    structlog.reset_defaults()


class TestSecretRedactor:
    def test_scrubs_configured_values(self):
        redact = SecretRedactor(["tok-123456", "s3cr3t"])
        event = redact(None, "info", {
            "event": "monday_api_transport_error",
            "error": "401 for token tok-123456",
            "body": '{"secret": "s3cr3t"}',
            "status": 401,
        })
        assert event["error"] == f"401 for token {REDACTED}"
        assert event["body"] == f'{{"secret": "{REDACTED}"}}'
        assert event["status"] == 401

    def test_ignores_empty_and_short_secrets(self):
        redact = SecretRedactor(["", "ab"])
        event = redact(None, "info", {"event": "about", "item_id": "ab12"})
        assert event == {"event": "about", "item_id": "ab12"}

    def test_longest_secret_replaced_first(self):
        redact = SecretRedactor(["abcd", "abcdefgh"])
        event = redact(None, "info", {"event": "key abcdefgh"})
        assert event["event"] == f"key {REDACTED}"


class TestClipPayloads:
    def test_long_body_clipped(self):
        event = clip_payloads(None, "info", {"event": "webhook_received", "body": "x" * 5000})
        assert event["body"].startswith("x" * 2000 + "...")
        assert event["body"].endswith("(5000 chars)")

    def test_short_and_non_string_fields_untouched(self):
        event = {"event": "formula_value_parsed", "value": 10 ** 400, "body": "{}"}
        assert clip_payloads(None, "info", dict(event)) == event


class TestSetupLogging:
    def test_json_output_redacts_stdlib_records(self, capsys, restore_logging):
        setup_logging(level="INFO", json_output=True, secrets=["s3cr3t-value"])
        logging.getLogger("aiohttp.server").error("bad header s3cr3t-value")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == f"bad header {REDACTED}"
        assert record["level"] == "error"
        assert record["logger"] == "aiohttp.server"

    def test_structlog_events_redacted(self, capsys, restore_logging):
        setup_logging(level="INFO", json_output=True, secrets=["tok-abcdef"])
        structlog.get_logger("formula_trigger.test").info(
            "monday_api_transport_error", error="auth tok-abcdef rejected"
        )

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["event"] == "monday_api_transport_error"
        assert record["error"] == f"auth {REDACTED} rejected"
        assert "timestamp" in record

    def test_access_log_quieted(self, restore_logging):
        setup_logging(level="INFO")
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
