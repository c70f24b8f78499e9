"""Tests for secret redaction in log records."""

import logging

from mcp_warden.display.logging_config import SecretRedactionFilter


def _record(msg, args=()):
    return logging.LogRecord("mcp_warden.test", logging.INFO, __file__, 1, msg, args, None)


class TestSecretRedactionFilter:
    def test_no_secrets_leaves_record_alone(self) -> None:
        record = _record("token %s", ("Bearer abc123",))
        assert SecretRedactionFilter().filter(record)
        assert record.getMessage() == "token Bearer abc123"

    def test_message_and_args_are_scrubbed(self) -> None:
        redact = SecretRedactionFilter()
        redact.register_all(["Bearer abc123", "k-999"])
        record = _record("auth=%s key=%s retries=%d", ("Bearer abc123", "k-999", 3))
        redact.filter(record)
        assert record.getMessage() == "auth=***REDACTED*** key=***REDACTED*** retries=3"

        inline = _record("sent Bearer abc123 upstream")
        redact.filter(inline)
        assert inline.getMessage() == "sent ***REDACTED*** upstream"

    def test_longest_secret_wins(self) -> None:
        redact = SecretRedactionFilter()
        redact.register("abcd")
        redact.register("abcdefgh")
        record = _record("value abcdefgh")
        redact.filter(record)
        assert record.getMessage() == "value ***REDACTED***"

    def test_short_values_are_ignored(self) -> None:
        redact = SecretRedactionFilter()
        redact.register("abc")
        redact.register("")
        record = _record("abc")
        redact.filter(record)
        assert record.getMessage() == "abc"

    def test_mapping_args(self) -> None:
        redact = SecretRedactionFilter()
        redact.register("hunter22")
        record = _record("%(pw)s", ({"pw": "hunter22"},))
        redact.filter(record)
        assert record.getMessage() == "***REDACTED***"
