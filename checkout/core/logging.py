"""
Structured JSON logging with a correlation id per request.
Debug payloads are scrubbed of secrets/PII before they are written.

One StructuredLogger is created per request (see create_logger) and thrown
away afterwards; child loggers share its correlation id and clock.
"""
from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from checkout.config import Settings, get_settings
from checkout.core.correlation import CorrelationIdGenerator, header_value
from checkout.core.masking import SensitiveDataMasker

logger = logging.getLogger(__name__)

SINK_NAME = "checkout.log"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class LogConfig(BaseModel):
    """Logging behaviour, resolved once instead of read from os.environ on every call."""

    model_config = ConfigDict(frozen=True)

    service_name: str = "payment-function"
    version: str = "v8.7"
    environment: str = "production"
    debug_enabled: bool = False
    mask_all_levels: bool = False
    mask_fail_closed: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogConfig":
        return cls(
            service_name=settings.service_name,
            version=settings.service_version,
            environment=settings.app_env,
            debug_enabled=settings.debug_enabled,
            mask_all_levels=settings.log_mask_all_levels,
            mask_fail_closed=settings.log_mask_fail_closed,
        )


class LogFormatter:
    """Builds log entries with the static service identity and renders them as one JSON line."""

    def __init__(
        self,
        service_name: str = "payment-function",
        version: str = "v8.7",
        environment: str = "production",
    ) -> None:
        self.service_name = service_name
        self.version = version
        self.environment = environment

    def format(
        self,
        level: str,
        message: str,
        correlation_id: str,
        context: Mapping[str, Any],
        metadata: Mapping[str, Any],
        elapsed_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": level.upper(),
            "correlationId": correlation_id,
            "message": message,
            "service": self.service_name,
            "version": self.version,
            "environment": self.environment,
            **context,
            **metadata,
        }
        if elapsed_ms is not None:
            entry["elapsedMs"] = elapsed_ms
        return entry

    def to_json(self, entry: Mapping[str, Any]) -> str:
        return json.dumps(entry, ensure_ascii=False, default=str)


def get_sink(name: str = SINK_NAME) -> logging.Logger:
    """stdlib logger that prints pre-rendered lines: debug/info to stdout, warn/error to stderr."""
    sink = logging.getLogger(name)
    if not sink.handlers:
        stdout = logging.StreamHandler(sys.stdout)
        stdout.addFilter(lambda record: record.levelno < logging.WARNING)
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setLevel(logging.WARNING)
        for handler in (stdout, stderr):
            handler.setFormatter(logging.Formatter("%(message)s"))
            sink.addHandler(handler)
        sink.setLevel(logging.DEBUG)
        sink.propagate = False
    return sink


def _json_size(value: Any) -> int:
    """Length of the JSON rendering; 0 for values the encoder rejects (cycles, bad keys)."""
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return 0


def _preview(value: Any, limit: Optional[int] = 100) -> str:
    try:
        text = str(value)
    except Exception:
        text = f"<unprintable {type(value).__name__}>"
    return text if limit is None else text[:limit]


def describe_error(error: Any) -> dict[str, Any]:
    if not isinstance(error, BaseException):
        return {"message": _preview(error, None), "name": type(error).__name__, "stack": None, "code": None}
    code = getattr(error, "code", None)
    if code is None:
        code = getattr(error, "errno", None)
    try:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    except Exception:
        stack = None
    return {
        "message": _preview(error, None),
        "name": type(error).__name__,
        "stack": stack,
        "code": code,
    }


class Timer:
    """Returned by StructuredLogger.start_timer; end() logs the duration at debug level."""

    def __init__(self, owner: "StructuredLogger", operation_name: str) -> None:
        self.owner = owner
        self.operation_name = operation_name
        self.started = time.monotonic()

    def end(self) -> int:
        duration = int((time.monotonic() - self.started) * 1000)
        self.owner.debug(
            f"Operation completed: {self.operation_name}",
            {"operation": self.operation_name, "durationMs": duration},
        )
        return duration

    def __enter__(self) -> "Timer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.end()


class StructuredLogger:
    def __init__(
        self,
        correlation_id: Optional[str] = None,
        masker: Optional[SensitiveDataMasker] = None,
        formatter: Optional[LogFormatter] = None,
        config: Optional[LogConfig] = None,
        sink: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config or LogConfig()
        self.correlation_id = correlation_id or CorrelationIdGenerator.generate()
        self.context: dict[str, Any] = {}
        self.start_time = time.monotonic()
        self.masker = masker or SensitiveDataMasker(fail_closed=self.config.mask_fail_closed)
        self.formatter = formatter or LogFormatter(
            self.config.service_name, self.config.version, self.config.environment
        )
        self.sink = sink or get_sink()

    # Context

    def add_context(self, key: str, value: Any) -> "StructuredLogger":
        self.context[key] = value
        return self

    def add_context_bulk(self, context: Mapping[str, Any]) -> "StructuredLogger":
        self.context = {**self.context, **context}
        return self

    def child(self, additional_context: Optional[Mapping[str, Any]] = None) -> "StructuredLogger":
        child = StructuredLogger(self.correlation_id, self.masker, self.formatter, self.config, self.sink)
        child.context = {**self.context, **(additional_context or {})}
        child.start_time = self.start_time
        return child

    # Core

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)

    def _write(self, level: str, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        level = str(level).lower()
        if level == "warning":
            level = "warn"
        if level == "debug" and not self.config.debug_enabled:
            return
        try:
            metadata = metadata or {}
            if level == "debug" or self.config.mask_all_levels:
                metadata = self.masker.mask(metadata)
            if not isinstance(metadata, Mapping):
                metadata = {"metadata": metadata}
            entry = self.formatter.format(
                level,
                message,
                self.correlation_id,
                self.context,
                metadata,
                None if level == "debug" else self._elapsed_ms(),
            )
            self.sink.log(LEVELS.get(level, logging.INFO), self.formatter.to_json(entry))
        except Exception:
            logger.exception("log_write_failed", extra={"correlation_id": self.correlation_id})

    def debug(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._write("debug", message, metadata)

    def info(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._write("info", message, metadata)

    def warn(self, message: str, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self._write("warn", message, metadata)

    warning = warn

    def error(
        self,
        message: str,
        error: Any = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        metadata = dict(metadata or {})
        if error is not None:
            metadata["error"] = describe_error(error)
        self._write("error", message, metadata)

    def log_event(self, event_name: str, level: str = "info", data: Optional[Mapping[str, Any]] = None) -> None:
        """Every domain-specific method below goes through here so entries share one shape."""
        self._write(level, event_name, {"event": event_name, **(data or {})})

    # HTTP

    def log_request(self, method: str, headers: Optional[Mapping[str, Any]] = None, body: Any = None) -> None:
        self.log_event("Request received", "info", {
            "httpMethod": method,
            "origin": header_value(headers, "origin"),
            "userAgent": header_value(headers, "user-agent"),
            "contentType": header_value(headers, "content-type"),
            "bodySize": _json_size(body) if body else 0,
            "hasBody": bool(body),
        })

    def log_response(self, status_code: int, success: bool, response_size: int = 0) -> None:
        self.log_event("Response sent", "info", {
            "statusCode": status_code,
            "success": success,
            "responseSize": response_size,
        })

    def log_api_call(
        self,
        gateway: str,
        endpoint: str,
        method: str = "POST",
        request_data: Any = None,
    ) -> None:
        self.log_event(f"External API call: {gateway}", "info", {
            "gateway": gateway,
            "endpoint": endpoint,
            "method": method,
            "requestSize": _json_size(request_data if request_data is not None else {}),
        })

    def log_api_response(
        self,
        gateway: str,
        status_code: Optional[int],
        success: bool,
        response_time: Optional[int] = None,
    ) -> None:
        self.log_event(f"External API response: {gateway}", "info" if success else "warn", {
            "gateway": gateway,
            "statusCode": status_code,
            "success": success,
            "responseTimeMs": response_time,
        })

    # Payments

    def log_payment_initiated(self, gateway: str, order_id: str, amount: Any, source: Optional[str]) -> None:
        self.log_event("Payment initiated", "info", {
            "gateway": gateway,
            "orderId": order_id,
            "amount": amount,
            "paymentSource": source,
            "stage": "initiated",
        })

    def log_payment_success(self, gateway: str, order_id: str, token_received: bool = True) -> None:
        self.log_event("Payment created successfully", "info", {
            "gateway": gateway,
            "orderId": order_id,
            "tokenReceived": token_received,
            "stage": "success",
        })

    def log_payment_error(
        self,
        gateway: str,
        order_id: str,
        error_message: str,
        error_code: Any = None,
    ) -> None:
        self.log_event("Payment creation failed", "error", {
            "gateway": gateway,
            "orderId": order_id,
            "errorMessage": error_message,
            "errorCode": error_code,
            "stage": "error",
        })

    def log_webhook_sent(
        self,
        url: str,
        success: bool,
        status_code: Optional[int] = None,
        response_time: Optional[int] = None,
    ) -> None:
        self.log_event("Webhook notification sent", "info" if success else "warn", {
            "webhookUrl": self.masker.mask_url(url),
            "success": success,
            "statusCode": status_code,
            "responseTimeMs": response_time,
        })

    # Validation

    def log_validation_error(self, field: str, value: Any, reason: str) -> None:
        self.log_event("Validation failed", "warn", {
            "field": field,
            "receivedValue": _preview(value),
            "reason": reason,
            "validationFailed": True,
        })

    def log_validation_success(self, field: str, value: Any) -> None:
        self.log_event("Validation passed", "debug", {
            "field": field,
            "value": _preview(value),
            "validationPassed": True,
        })

    # Authentication

    def log_auth_attempt(self, gateway: str, client_id: str, method: str = "token_b2b") -> None:
        self.log_event(f"Authentication attempt: {gateway}", "info", {
            "gateway": gateway,
            "clientId": client_id,
            "authMethod": method,
        })

    def log_auth_success(self, gateway: str, method: str = "token_b2b", expires_in: Optional[int] = None) -> None:
        self.log_event(f"Authentication successful: {gateway}", "info", {
            "gateway": gateway,
            "authMethod": method,
            "tokenExpiresIn": expires_in,
        })

    def log_auth_failure(self, gateway: str, reason: str, status_code: Optional[int] = None) -> None:
        self.log_event(f"Authentication failed: {gateway}", "error", {
            "gateway": gateway,
            "reason": reason,
            "statusCode": status_code,
        })

    # Timing

    def start_timer(self, operation_name: str) -> Timer:
        return Timer(self, operation_name)


def create_logger(
    headers: Optional[Mapping[str, Any]] = None,
    service_name: Optional[str] = None,
    version: Optional[str] = None,
    config: Optional[LogConfig] = None,
) -> StructuredLogger:
    """Per-request logger; continues the caller's trace when a tracing header is present."""
    config = config or LogConfig.from_settings(get_settings())
    overrides = {k: v for k, v in (("service_name", service_name), ("version", version)) if v}
    if overrides:
        config = config.model_copy(update=overrides)
    correlation_id = (
        CorrelationIdGenerator.extract_from_headers(headers) if headers else CorrelationIdGenerator.generate()
    )
    formatter = LogFormatter(config.service_name, config.version, config.environment)
    return StructuredLogger(correlation_id, formatter=formatter, config=config)
