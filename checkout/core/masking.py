"""
Pattern-based redaction of secrets and PII before they reach log output.

Detection is best-effort: formats that are not listed in SENSITIVE_PATTERNS
pass through untouched, and some harmless values (long ids, timestamps) may
be redacted.
"""
from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "[REDACTED]"

# Applied in order; each rule rewrites the output of the previous one.
SENSITIVE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("private_key", re.compile(r"-----BEGIN[^-]+-----[\s\S]+?-----END[^-]+-----", re.IGNORECASE)),
    ("secret_key", re.compile(r"SK-[A-Za-z0-9]+")),
    ("server_key", re.compile(r"Mid-server-[A-Za-z0-9_-]+")),
    ("client_id", re.compile(r"BRN-\d+-\d+", re.ASCII)),
    ("bearer", re.compile(r"Bearer [A-Za-z0-9._-]+", re.IGNORECASE)),
    ("signature", re.compile(r"HMACSHA256=[A-Za-z0-9+/=]+", re.IGNORECASE)),
    ("token", re.compile(r"[A-Za-z0-9._-]{30,}")),
    ("email", re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")),
    ("phone", re.compile(r"\+?\d{10,15}", re.ASCII)),
    ("credit_card", re.compile(r"\b\d{13,19}\b", re.ASCII)),
)

SENSITIVE_QUERY_PARAMS = frozenset({"callback_token", "token", "signature", "key", "secret"})


def redact_match(value: str) -> str:
    """Short matches are hidden entirely; longer ones keep up to 4 leading chars."""
    if len(value) <= 10:
        return REDACTED
    visible = min(4, len(value) // 10)
    return value[:visible] + REDACTED


class SensitiveDataMasker:
    """
    Redacts recognizable secrets from strings and JSON-serializable structures.

    Structures are serialized to JSON, scrubbed as text and parsed back. When
    that round-trip fails the masker returns the original value (fail open),
    or the REDACTED sentinel when built with fail_closed=True.
    """

    def __init__(self, patterns=SENSITIVE_PATTERNS, fail_closed: bool = False) -> None:
        self.patterns = patterns
        self.fail_closed = fail_closed

    def mask(self, data: Any) -> Any:
        if not data:
            return data
        if isinstance(data, str):
            return self._apply_patterns(data)
        try:
            text = json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return self._fallback(data)
        masked = self._apply_patterns(text)
        try:
            return json.loads(masked)
        except ValueError:
            return self._fallback(data)

    def mask_url(self, url: Any) -> Any:
        """Replace values of known-sensitive query parameters; non-URLs are returned as-is."""
        if not isinstance(url, str):
            return url
        try:
            parts = urlsplit(url)
            if not parts.scheme or not parts.netloc:
                return url
            params = [
                (name, REDACTED if name in SENSITIVE_QUERY_PARAMS else value)
                for name, value in parse_qsl(parts.query, keep_blank_values=True)
            ]
            return urlunsplit(parts._replace(query=urlencode(params, safe="[]")))
        except ValueError:
            return url

    def _apply_patterns(self, text: str) -> str:
        for _name, pattern in self.patterns:
            text = pattern.sub(lambda m: redact_match(m.group(0)), text)
        return text

    def _fallback(self, data: Any) -> Any:
        return REDACTED if self.fail_closed else data
