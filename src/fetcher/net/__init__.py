"""
Network utilities: retry with exponential backoff and the single-attempt HTTP
transfer driver.
"""

from .retry import RetryConfig, with_retry_async
from .transfer import TransferDriver, TransferResult

__all__ = [
    "RetryConfig",
    "with_retry_async",
    "TransferDriver",
    "TransferResult",
]
