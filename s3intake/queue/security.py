"""Redaction helpers for queue payloads that end up in logs and dead-letter reasons."""

from __future__ import annotations

import logging
import re
from typing import Any

_SENSITIVE_KEYS = ("password", "passwd", "secret", "token", "signature", "access_key", "accesskey")
_KEY_VALUE_PATTERN = re.compile(
    r"(?i)\b(password|passwd|secret|token|signature|x-amz-security-token|x-amz-signature|aws_secret_access_key)"
    r"\b\s*([:=])\s*([^\s,;&\"']+)"
)
_BEARER_PATTERN = re.compile(r"(?i)\bbearer\s+\S+")
_ACCESS_KEY_ID_PATTERN = re.compile(r"\b(AKIA|ASIA)[A-Z0-9]{16}\b")

DEFAULT_PREVIEW_LENGTH = 256


def redact_sensitive_text(text: str) -> str:
    """Redact known credential patterns in arbitrary text."""
    redacted = _KEY_VALUE_PATTERN.sub(lambda match: f"{match.group(1)}{match.group(2)}***", text)
    redacted = _BEARER_PATTERN.sub("Bearer ***", redacted)
    redacted = _ACCESS_KEY_ID_PATTERN.sub(lambda match: f"{match.group(1)}***", redacted)
    return redacted


def redact_sensitive_data(value: Any) -> Any:
    """Recursively redact sensitive fields from nested data."""
    if isinstance(value, dict):
        redacted: dict[Any, Any] = {}
        for key, item in value.items():
            if isinstance(key, str) and any(marker in key.lower() for marker in _SENSITIVE_KEYS):
                redacted[key] = "***"
                continue
            redacted[key] = redact_sensitive_data(item)
        return redacted
    if isinstance(value, list):
        return [redact_sensitive_data(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact_sensitive_data(item) for item in value)
    if isinstance(value, str):
        return redact_sensitive_text(value)
    return value


def redact_error_message(error: Exception | str) -> str:
    """Normalize and redact exception text before logging or dead-lettering."""
    return redact_sensitive_text(str(error))


def preview_payload(payload: str | bytes, limit: int = DEFAULT_PREVIEW_LENGTH) -> str:
    """Return a redacted, single-line, truncated view of a message payload."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    text = " ".join(redact_sensitive_text(payload).split())
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text) - limit} more chars)"


class SensitiveDataLogFilter(logging.Filter):
    """Logging filter that redacts credentials from messages and arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            safe_args: Any = tuple(redact_sensitive_data(item) for item in record.args)
        elif isinstance(record.args, dict):
            safe_args = redact_sensitive_data(record.args)
        else:
            record.msg = redact_sensitive_text(str(record.msg))
            return True
        try:
            rendered = str(record.msg) % safe_args
        except (TypeError, ValueError):
            rendered = f"{record.msg} {safe_args!r}"
        record.msg = redact_sensitive_text(rendered)
        record.args = ()
        return True
