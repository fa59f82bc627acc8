"""
Correlation ids: tie every log line of one request together, and continue a
trace started by the caller when it sends one of the tracing headers.
"""
from __future__ import annotations

import secrets
import time
from typing import Any, Mapping, Optional

# Priority order; these names are a contract with upstream callers.
TRACE_HEADERS = ("x-trace-id", "x-request-id", "x-correlation-id")


def header_value(headers: Optional[Mapping[str, Any]], name: str) -> Any:
    """Exact-name lookup first, then case-insensitive (plain dicts keep the sender's casing)."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if isinstance(key, str) and key.lower() == lowered:
            return candidate
    return None


class CorrelationIdGenerator:
    @staticmethod
    def generate() -> str:
        return f"req_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    @classmethod
    def extract_from_headers(cls, headers: Optional[Mapping[str, Any]] = None) -> str:
        for name in TRACE_HEADERS:
            value = header_value(headers, name)
            if value:
                return str(value)
        return cls.generate()
