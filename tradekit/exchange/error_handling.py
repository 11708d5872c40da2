from __future__ import annotations

"""
Exchange Error Handling and Logging
===================================

Error classification and logging for exchange operations:
- Structured error info with category, severity and retryability
- Kraken error-string classification (EAPI:/EOrder:/EService:/...)
- Caller-side retry with exponential backoff (clients never retry themselves)
- Operation context that logs duration and classified failures
"""

import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from tradekit.exchange.common import (
    RateLimitError,
    ResponseError,
    ServerError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    EXCHANGE_SPECIFIC = "exchange_specific"
    SYSTEM = "system"


@dataclass
class ExchangeErrorContext:
    """Context information for exchange errors."""
    exchange_name: str
    operation: str
    symbol: Optional[str] = None
    order_id: Optional[str] = None
    timestamp_ns: int = 0

    def __post_init__(self):
        if self.timestamp_ns == 0:
            self.timestamp_ns = time.time_ns()


@dataclass
class ExchangeErrorInfo:
    """Structured error information."""
    error: Exception
    category: ErrorCategory
    severity: ErrorSeverity
    context: ExchangeErrorContext
    retryable: bool = False
    retry_after_seconds: Optional[float] = None
    user_message: Optional[str] = None

    @property
    def error_code(self) -> str:
        """Get standardized error code."""
        return f"{self.category.value}_{self.error.__class__.__name__}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "error_message": str(self.error),
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "retry_after_seconds": self.retry_after_seconds,
            "user_message": self.user_message,
            "context": {
                "exchange_name": self.context.exchange_name,
                "operation": self.context.operation,
                "symbol": self.context.symbol,
                "order_id": self.context.order_id,
                "timestamp_ns": self.context.timestamp_ns,
            }
        }


# Kraken error prefixes/strings -> (category, severity, retryable, retry_after)
_KRAKEN_PATTERNS = (
    ("EAPI:Rate limit exceeded", ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, True, 15.0),
    ("EOrder:Rate limit exceeded", ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, True, 15.0),
    ("EGeneral:Too many requests", ErrorCategory.RATE_LIMIT, ErrorSeverity.MEDIUM, True, 15.0),
    ("EAPI:Invalid nonce", ErrorCategory.AUTHENTICATION, ErrorSeverity.MEDIUM, True, 0.5),
    ("EAPI:Invalid key", ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, False, None),
    ("EAPI:Invalid signature", ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, False, None),
    ("EGeneral:Permission denied", ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL, False, None),
    ("EService:Unavailable", ErrorCategory.NETWORK, ErrorSeverity.HIGH, True, 5.0),
    ("EService:Busy", ErrorCategory.NETWORK, ErrorSeverity.MEDIUM, True, 2.0),
    ("EGeneral:Internal error", ErrorCategory.NETWORK, ErrorSeverity.HIGH, True, 5.0),
    ("EGeneral:Invalid arguments", ErrorCategory.VALIDATION, ErrorSeverity.LOW, False, None),
    ("EQuery:Unknown asset", ErrorCategory.VALIDATION, ErrorSeverity.LOW, False, None),
)


class ExchangeErrorHandler:
    """Classifies exchange errors so callers can decide whether retrying helps."""

    def classify_error(self, error: Exception, context: ExchangeErrorContext) -> ExchangeErrorInfo:
        """Classify an error and create structured error info."""
        category = ErrorCategory.SYSTEM
        severity = ErrorSeverity.MEDIUM
        retryable = False
        retry_after: Optional[float] = None

        if isinstance(error, ValidationError):
            category, severity = ErrorCategory.VALIDATION, ErrorSeverity.LOW
        elif isinstance(error, RateLimitError):
            category, retryable, retry_after = ErrorCategory.RATE_LIMIT, True, 1.0
        elif isinstance(error, ServerError):
            status_code = error.status_code
            if status_code == 429:
                category, retryable, retry_after = ErrorCategory.RATE_LIMIT, True, 30.0
            elif status_code is None or status_code >= 500:
                category, severity = ErrorCategory.NETWORK, ErrorSeverity.HIGH
                retryable, retry_after = True, 5.0
            elif status_code in (401, 403):
                category, severity = ErrorCategory.AUTHENTICATION, ErrorSeverity.CRITICAL
            else:
                category = ErrorCategory.NETWORK
        elif isinstance(error, ResponseError):
            category = ErrorCategory.EXCHANGE_SPECIFIC
            for message in error.errors:
                match = next((p for p in _KRAKEN_PATTERNS if message.startswith(p[0])), None)
                if match is not None:
                    _, category, severity, retryable, retry_after = match
                    break

        return ExchangeErrorInfo(
            error=error,
            category=category,
            severity=severity,
            context=context,
            retryable=retryable,
            retry_after_seconds=retry_after,
            user_message=self._generate_user_message(category, context),
        )

    def _generate_user_message(self, category: ErrorCategory,
                               context: ExchangeErrorContext) -> str:
        """Generate user-friendly error message."""
        base_messages = {
            ErrorCategory.NETWORK: f"Network connectivity issue with {context.exchange_name}",
            ErrorCategory.AUTHENTICATION: f"Authentication failed with {context.exchange_name}",
            ErrorCategory.VALIDATION: f"Invalid request to {context.exchange_name}",
            ErrorCategory.RATE_LIMIT: f"Rate limit exceeded on {context.exchange_name}",
            ErrorCategory.EXCHANGE_SPECIFIC: f"Exchange error on {context.exchange_name}",
            ErrorCategory.SYSTEM: f"System error with {context.exchange_name}",
        }

        message = base_messages.get(category, f"Error with {context.exchange_name}")
        if context.symbol:
            message += f" for {context.symbol}"
        if context.operation:
            message += f" during {context.operation}"

        return message


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 backoff_factor: float = 2.0,
                 jitter: bool = True):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter


class ExchangeRetryHandler:
    """Retries operations whose failures classify as retryable."""

    def __init__(self, config: RetryConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._sleep = sleep

    def execute_with_retry(self, operation: Callable[[], Any],
                           error_handler: ExchangeErrorHandler,
                           context: ExchangeErrorContext) -> Any:
        """Execute operation with retry logic."""
        for attempt in range(self.config.max_attempts):
            try:
                return operation()
            except Exception as e:
                error_info = error_handler.classify_error(e, context)
                logger.warning(
                    f"Exchange operation failed (attempt {attempt + 1}/{self.config.max_attempts}): "
                    f"{error_info.error_code} - {e}"
                )
                if not error_info.retryable or attempt == self.config.max_attempts - 1:
                    raise

                delay = self._calculate_delay(attempt, error_info.retry_after_seconds)
                logger.info(
                    f"Retrying {context.operation} in {delay:.2f}s "
                    f"(attempt {attempt + 2}/{self.config.max_attempts})"
                )
                self._sleep(delay)

    def _calculate_delay(self, attempt: int, suggested_delay: Optional[float]) -> float:
        """Calculate delay for next retry attempt."""
        if suggested_delay is not None:
            delay = suggested_delay
        else:
            delay = self.config.base_delay * (self.config.backoff_factor ** attempt)

        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            delay *= (0.5 + random.random() * 0.5)  # 50-100% of calculated delay

        return delay


@contextmanager
def exchange_operation_context(exchange_name: str, operation: str,
                               symbol: Optional[str] = None,
                               order_id: Optional[str] = None):
    """Log start, duration and classified failure of an exchange operation.

    The original exception propagates unchanged so callers keep the error kind.
    """
    context = ExchangeErrorContext(
        exchange_name=exchange_name,
        operation=operation,
        symbol=symbol,
        order_id=order_id,
    )

    start_time = time.time_ns()
    try:
        logger.info(f"Starting {operation} on {exchange_name}" +
                    (f" for {symbol}" if symbol else ""))
        yield context
    except Exception as e:
        duration_ms = (time.time_ns() - start_time) / 1_000_000
        error_info = ExchangeErrorHandler().classify_error(e, context)
        logger.error(
            f"Exchange operation {operation} failed after {duration_ms:.2f}ms: {e}",
            extra={
                "error_info": error_info.to_dict(),
                "duration_ms": duration_ms
            }
        )
        raise
    else:
        duration_ms = (time.time_ns() - start_time) / 1_000_000
        logger.info(f"Completed {operation} on {exchange_name} in {duration_ms:.2f}ms")


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ExchangeErrorContext",
    "ExchangeErrorInfo",
    "ExchangeErrorHandler",
    "RetryConfig",
    "ExchangeRetryHandler",
    "exchange_operation_context",
]
