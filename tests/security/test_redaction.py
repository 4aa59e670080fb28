"""Tests for secret and personal data redaction."""

import pytest

from device_gateway.security.redaction import REDACTED, redact


class TestRedact:
    """Test redact() patterns."""

    @pytest.mark.parametrize(
        "text,leaked",
        [
            ("Authorization: Bearer abc.def-123", "abc.def-123"),
            ('{"access_token": "tok-1"}', "tok-1"),
            ("refresh_token=r-2&grant_type=refresh_token", "r-2"),
            ("client_secret: s3cret", "s3cret"),
            ("login failed for jane.doe@example.com", "jane.doe@example.com"),
        ],
    )
    def test_sensitive_values_removed(self, text, leaked):
        cleaned = redact(text)

        assert leaked not in cleaned
        assert REDACTED in cleaned

    def test_plain_text_untouched(self):
        assert redact("Device lock-1 is offline") == "Device lock-1 is offline"

    def test_empty(self):
        assert redact("") == ""
