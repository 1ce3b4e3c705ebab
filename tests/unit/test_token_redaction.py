"""Unit tests for token redaction and structured security logging.

These tests verify that access token ids never reach log output, and that
security events carry the fields log pipelines filter on.
"""

import json
import logging

from keygate.core.logging_config import SecurityEventFilter, SIEMJsonFormatter, format_security_event
from keygate.core.middleware import (
    TOKEN_REDACTED,
    TokenRedactionFilter,
    is_token_path,
    redact_exception_args,
    redact_tokens,
)
from keygate.core.security import generate_token_id


def make_record(msg, args=(), name="security.tokens", **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRedactTokens:
    def test_redacts_bare_token_id(self):
        token_id = generate_token_id()
        result = redact_tokens(f"validating {token_id} now")
        assert token_id not in result
        assert TOKEN_REDACTED in result

    def test_redacts_token_query_param(self):
        result = redact_tokens("GET /verify-key?token=abc123&x=1")
        assert "abc123" not in result
        assert f"token={TOKEN_REDACTED}&x=1" in result

    def test_keeps_device_ids(self):
        device_id = "0123456789abcdef0123456789abcdef"
        assert redact_tokens(f"device {device_id}") == f"device {device_id}"

    def test_handles_empty_string(self):
        assert redact_tokens("") == ""

    def test_token_paths(self):
        assert is_token_path("/api/v1/tokens/validate")
        assert is_token_path("/api/v1/operator/stats")
        assert not is_token_path("/health")


class TestTokenRedactionFilter:
    def test_redacts_message(self):
        token_id = generate_token_id()
        record = make_record(f"token {token_id} rejected")

        assert TokenRedactionFilter().filter(record) is True
        assert token_id not in record.getMessage()

    def test_redacts_tuple_args(self):
        token_id = generate_token_id()
        record = make_record("token %s for %d", (token_id, 5))

        TokenRedactionFilter().filter(record)

        assert record.args == (TOKEN_REDACTED, 5)

    def test_redacts_dict_args(self):
        token_id = generate_token_id()
        record = make_record("token %(t)s", ({"t": token_id},))

        TokenRedactionFilter().filter(record)

        assert token_id not in record.getMessage()

    def test_redact_exception_args(self):
        token_id = generate_token_id()
        exc = redact_exception_args(ValueError(f"bad token {token_id}", 3))
        assert exc.args == (f"bad token {TOKEN_REDACTED}", 3)


class TestSecurityLogging:
    def test_format_security_event(self):
        event = format_security_event(
            event_type="token.activated",
            severity="info",
            description="activated",
            device_id="d" * 32,
            token_hint="abcd1234",
        )
        assert event == {
            "event_type": "token.activated",
            "severity": "info",
            "description": "activated",
            "is_security_event": True,
            "device_id": "d" * 32,
            "token_hint": "abcd1234",
        }

    def test_format_security_event_omits_empty_fields(self):
        event = format_security_event("token.revoked", "medium", "revoked")
        assert "device_id" not in event
        assert "metadata" not in event

    def test_security_filter_tags_security_logger(self):
        record = make_record("anything", name="security.tokens.sub")
        SecurityEventFilter().filter(record)
        assert record.is_security_event is True

    def test_security_filter_leaves_other_loggers(self):
        record = make_record("database ready", name="keygate.db")
        SecurityEventFilter().filter(record)
        assert record.is_security_event is False

    def test_json_formatter_output(self):
        record = make_record("Token activated", event_type="token.activated", token_hint="abcd1234")

        output = json.loads(SIEMJsonFormatter().format(record))

        assert output["message"] == "Token activated"
        assert output["level"] == "INFO"
        assert output["logger"] == "security.tokens"
        assert output["event_type"] == "token.activated"
        assert output["token_hint"] == "abcd1234"
        assert output["service"]["name"] == "KeyGate"
        assert "@timestamp" in output

    def test_json_formatter_default_event_type(self):
        record = make_record("hello", name="keygate.main")
        output = json.loads(SIEMJsonFormatter().format(record))
        assert output["event_type"] == "log.keygate.main"
