"""Scrubbing of secrets and personal data from log and error text."""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_BEARER_RE = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*")
_TOKEN_FIELD_RE = re.compile(
    r"(?i)((?:access_token|refresh_token|client_secret|password|api_key)"
    r"[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"
)


def redact(text: str) -> str:
    """Replace tokens, secrets and email addresses with a placeholder.

    Args:
        text: Arbitrary text (error message, log line, payload dump)

    Returns:
        Text with sensitive values replaced by [REDACTED]
    """
    if not text:
        return text
    text = _BEARER_RE.sub(rf"\1{REDACTED}", text)
    text = _TOKEN_FIELD_RE.sub(rf"\1{REDACTED}", text)
    return _EMAIL_RE.sub(REDACTED, text)
