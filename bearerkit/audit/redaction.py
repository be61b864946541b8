"""Redaction of token material before audit events leave the process.

Plaintext tokens should never reach an audit event, but metadata is supplied
by callers and may carry one by accident. The redactor scrubs anything shaped
like a bearer token and blanks values under credential-looking keys.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


@dataclass
class RedactionPattern:
    """A pattern for detecting and redacting sensitive data."""

    name: str
    pattern: re.Pattern
    replacement: str = "[REDACTED]"


_REDACTION_PATTERNS: list[RedactionPattern] = [
    # {prefix}_{environment}_{secret}
    RedactionPattern(
        "bearer_token",
        re.compile(r"\b[A-Za-z0-9]+_[A-Za-z0-9]+_[A-Za-z0-9\-]{16,}\b"),
        "[REDACTED:TOKEN]",
    ),
    RedactionPattern(
        "authorization_header",
        re.compile(r"[Bb]earer\s+[A-Za-z0-9\-_\.]+"),
        "[REDACTED:BEARER_TOKEN]",
    ),
    # hex digests of sha256 / sha512
    RedactionPattern(
        "token_digest",
        re.compile(r"\b(?:[0-9a-f]{128}|[0-9a-f]{64})\b"),
        "[REDACTED:DIGEST]",
    ),
]

SENSITIVE_KEYS = (
    "token",
    "secret",
    "password",
    "authorization",
    "api_key",
    "apikey",
    "credential",
)


@dataclass
class RedactionConfig:
    """Configuration for the redactor."""

    custom_patterns: list[RedactionPattern] = field(default_factory=list)
    sensitive_keys: tuple[str, ...] = SENSITIVE_KEYS

    # Keys that look sensitive but only ever hold identifiers
    allowed_keys: tuple[str, ...] = ("token_id", "parent_token_id", "old_token_id", "new_token_id")
    max_depth: int = 10


class Redactor:
    """Scrubs token material from strings and nested structures."""

    def __init__(self, config: RedactionConfig | None = None):
        self.config = config or RedactionConfig()
        self._patterns = [*_REDACTION_PATTERNS, *self.config.custom_patterns]

    def redact_string(self, text: str) -> str:
        if not text or not isinstance(text, str):
            return text

        result = text
        for pattern in self._patterns:
            result = pattern.pattern.sub(pattern.replacement, result)
        return result

    def redact_value(self, value: Any, depth: int = 0) -> Any:
        """Recursively redact sensitive data from any value."""
        if depth > self.config.max_depth:
            return "[MAX_DEPTH_EXCEEDED]"

        if value is None or isinstance(value, (bool, int, float)):
            return value

        if isinstance(value, str):
            return self.redact_string(value)

        if isinstance(value, dict):
            return self._redact_dict(value, depth)

        if isinstance(value, (list, tuple)):
            return type(value)(self.redact_value(item, depth + 1) for item in value)

        return self.redact_string(str(value))

    def _redact_dict(self, data: dict, depth: int) -> dict:
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if (
                key_lower not in self.config.allowed_keys
                and any(marker in key_lower for marker in self.config.sensitive_keys)
                and isinstance(value, str)
                and value
            ):
                result[key] = "[REDACTED]"
            else:
                result[key] = self.redact_value(value, depth + 1)
        return result


_default_redactor: Redactor | None = None


def get_redactor() -> Redactor:
    """Get the shared redactor instance."""
    global _default_redactor
    if _default_redactor is None:
        _default_redactor = Redactor()
    return _default_redactor


def redact(value: Any) -> Any:
    """Convenience function to redact sensitive data."""
    return get_redactor().redact_value(value)
