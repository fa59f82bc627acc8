from checkout.core.correlation import CorrelationIdGenerator
from checkout.core.logging import LogConfig, LogFormatter, StructuredLogger, create_logger
from checkout.core.masking import REDACTED, SensitiveDataMasker

__all__ = [
    "CorrelationIdGenerator",
    "LogConfig",
    "LogFormatter",
    "StructuredLogger",
    "create_logger",
    "REDACTED",
    "SensitiveDataMasker",
]
