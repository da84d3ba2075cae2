"""
Unified Error Handling and Recovery

Design:
1. Classify errors by recovery strategy, not by origin
2. Single unified interface for logging handled errors
3. Automatic context capture for debugging
4. Graceful degradation over complete failure
"""

import asyncio
import inspect
import time
import traceback
import uuid
from enum import Enum
from typing import Dict, Any, Optional, Callable, Awaitable, Type, TypeVar
from dataclasses import dataclass, field

import httpx
import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class ErrorSeverity(Enum):
    """Error severity classification by impact"""
    DEBUG = "debug"           # Development info, no user impact
    INFO = "info"             # Normal operation info
    WARNING = "warning"       # Degraded response, service continues
    ERROR = "error"           # Feature failure, other features work
    CRITICAL = "critical"     # Service failure, immediate action needed


class ErrorCategory(Enum):
    """Error categories by recovery strategy"""
    # Retriable errors - can be fixed by retrying
    NETWORK = "network"           # Timeout, connection reset, 5xx
    RATE_LIMIT = "rate_limit"     # 429 from an upstream API
    EMPTY_RESPONSE = "empty"      # Upstream answered with nothing usable

    # Non-retriable but recoverable
    VALIDATION = "validation"     # Input validation, schema errors
    AUTHENTICATION = "auth"       # Permission denied, invalid tokens
    NOT_FOUND = "not_found"       # Missing resources

    # Require operator intervention
    CONFIGURATION = "config"      # Missing config, invalid settings
    STORAGE = "storage"           # Database or disk failure

    # Programming errors
    LOGIC = "logic"
    UNKNOWN = "unknown"


class EmptyResponseError(RuntimeError):
    """Upstream service answered without a usable payload"""


class ConfigurationError(RuntimeError):
    """Required configuration is missing"""


@dataclass
class ErrorContext:
    """Structured error context for debugging and recovery"""
    error_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    timestamp: float = field(default_factory=time.time)

    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN

    message: str = ""
    original_exception: Optional[BaseException] = None
    error_type: str = ""

    operation: str = ""
    component: str = ""
    user_id: Optional[str] = None

    stack_trace: str = ""
    function_name: str = ""
    line_number: int = 0

    is_retriable: bool = False
    retry_count: int = 0

    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            "error_id": self.error_id,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "error_type": self.error_type,
            "operation": self.operation,
            "component": self.component,
            "user_id": self.user_id,
            "function_name": self.function_name,
            "line_number": self.line_number,
            "is_retriable": self.is_retriable,
            "retry_count": self.retry_count,
            "metadata": self.metadata
        }


class ErrorHandler:
    """
    Unified error handler

    Converts any error into structured context, keeps a small window of
    recent errors and logs at a level matching the severity.
    """

    def __init__(self):
        self.error_stats: Dict[str, int] = {}
        self.recent_errors: list[ErrorContext] = []
        self.max_recent_errors = 100
        self.classification_rules = self._build_classification_rules()

    def _build_classification_rules(self) -> Dict[Type[BaseException], tuple[ErrorCategory, ErrorSeverity]]:
        """Most specific types first; the first isinstance match wins"""
        return {
            EmptyResponseError: (ErrorCategory.EMPTY_RESPONSE, ErrorSeverity.WARNING),
            ConfigurationError: (ErrorCategory.CONFIGURATION, ErrorSeverity.ERROR),
            httpx.TimeoutException: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            httpx.TransportError: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            httpx.HTTPStatusError: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            ConnectionError: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            TimeoutError: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            asyncio.TimeoutError: (ErrorCategory.NETWORK, ErrorSeverity.WARNING),
            PermissionError: (ErrorCategory.AUTHENTICATION, ErrorSeverity.ERROR),
            FileNotFoundError: (ErrorCategory.NOT_FOUND, ErrorSeverity.WARNING),
            OSError: (ErrorCategory.STORAGE, ErrorSeverity.ERROR),
            ValueError: (ErrorCategory.VALIDATION, ErrorSeverity.WARNING),
            KeyError: (ErrorCategory.VALIDATION, ErrorSeverity.WARNING),
            AssertionError: (ErrorCategory.LOGIC, ErrorSeverity.CRITICAL),
            Exception: (ErrorCategory.UNKNOWN, ErrorSeverity.ERROR),
        }

    def classify_error(self, exception: BaseException) -> tuple[ErrorCategory, ErrorSeverity]:
        """Classify error by type"""
        if isinstance(exception, httpx.HTTPStatusError) and exception.response.status_code == 429:
            return ErrorCategory.RATE_LIMIT, ErrorSeverity.WARNING

        for error_type, classification in self.classification_rules.items():
            if isinstance(exception, error_type):
                return classification

        return ErrorCategory.UNKNOWN, ErrorSeverity.ERROR

    def create_context(self,
                       exception: BaseException,
                       operation: str = "",
                       component: str = "",
                       user_id: Optional[str] = None,
                       retry_count: int = 0,
                       **metadata) -> ErrorContext:
        """Create structured error context from exception"""

        frame = inspect.currentframe()
        caller_frame = frame.f_back if frame else None
        function_name = caller_frame.f_code.co_name if caller_frame else ""
        line_number = caller_frame.f_lineno if caller_frame else 0

        category, severity = self.classify_error(exception)

        return ErrorContext(
            severity=severity,
            category=category,
            message=str(exception),
            original_exception=exception,
            error_type=type(exception).__name__,
            operation=operation,
            component=component,
            user_id=user_id,
            stack_trace="".join(traceback.format_exception(exception)),
            function_name=function_name,
            line_number=line_number,
            is_retriable=category in {
                ErrorCategory.NETWORK,
                ErrorCategory.RATE_LIMIT,
                ErrorCategory.EMPTY_RESPONSE,
            },
            retry_count=retry_count,
            metadata=metadata
        )

    def handle_error(self, context: ErrorContext) -> None:
        """Handle error with unified logging and stats"""

        key = f"{context.category.value}.{context.severity.value}"
        self.error_stats[key] = self.error_stats.get(key, 0) + 1

        self.recent_errors.append(context)
        if len(self.recent_errors) > self.max_recent_errors:
            self.recent_errors.pop(0)

        log_data = context.to_dict()

        if context.severity == ErrorSeverity.DEBUG:
            logger.debug("error.handled", **log_data)
        elif context.severity == ErrorSeverity.INFO:
            logger.info("error.handled", **log_data)
        elif context.severity == ErrorSeverity.WARNING:
            logger.warning("error.handled", **log_data)
        elif context.severity == ErrorSeverity.ERROR:
            logger.error("error.handled", **log_data)
        else:
            logger.critical("error.handled", **log_data)

    def get_stats(self) -> Dict[str, Any]:
        """Get error statistics for monitoring"""
        current_time = time.time()
        return {
            "total_errors": sum(self.error_stats.values()),
            "error_breakdown": self.error_stats.copy(),
            "recent_error_count": len(self.recent_errors),
            "errors_last_minute": len([
                error for error in self.recent_errors
                if current_time - error.timestamp < 60
            ]),
        }


# Global error handler instance
_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get global error handler instance"""
    return _error_handler


class RetryExhaustedError(RuntimeError):
    """All attempts of a retried operation failed"""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


async def retry_async(func: Callable[[], Awaitable[T]],
                      retries: int,
                      delay: float,
                      operation: str = "",
                      component: str = "",
                      sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                      **metadata) -> T:
    """
    Run ``func`` with a bounded, fixed-delay retry policy

    Makes at most ``retries + 1`` attempts. Every failure is recorded through
    the error handler; a pause of ``delay`` seconds precedes each retry.

    Raises:
        RetryExhaustedError: Every attempt failed
    """
    attempt = 0
    while True:
        try:
            return await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            context = _error_handler.create_context(
                e,
                operation=operation,
                component=component,
                retry_count=attempt,
                **metadata
            )
            _error_handler.handle_error(context)

            if attempt >= retries:
                raise RetryExhaustedError(operation, attempt + 1, e) from e

            attempt += 1
            logger.info("retry.scheduled",
                        operation=operation,
                        attempt=attempt,
                        delay_seconds=delay)
            await sleep(delay)


def log_and_return_error(exception: Exception,
                         default_return: Any = None,
                         operation: str = "",
                         component: str = "",
                         **metadata) -> Any:
    """Log error and return default value instead of raising"""
    context = _error_handler.create_context(
        exception,
        operation=operation,
        component=component,
        **metadata
    )
    _error_handler.handle_error(context)
    return default_return
