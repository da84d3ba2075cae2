"""
Structured Logging Configuration

Unified structlog setup shared by the API, the speech loop and the services.

Features:
1. Dotted event names ("component.operation") split into filterable fields
2. Human-readable console output in development
3. JSON output with log rotation in production
4. Performance timing helpers
"""

import asyncio
import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import Dict, Any, Optional

import structlog
from structlog.typing import FilteringBoundLogger

from nova.core.config import config


def get_log_level() -> int:
    """Get log level from environment"""
    level_str = os.getenv("NOVA_LOG_LEVEL", config.LOG_LEVEL).upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_dir() -> Path:
    """Get logs directory"""
    log_dir = Path(os.getenv("NOVA_LOG_DIR", config.PROJECT_ROOT / "logs"))
    log_dir.mkdir(exist_ok=True)
    return log_dir


def add_event_hierarchy(logger: FilteringBoundLogger,
                        wrapped_method,
                        event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Split dotted event names into component/operation fields"""

    event_dict["process_id"] = os.getpid()

    event = event_dict.get("event")
    if isinstance(event, str):
        event_parts = event.split(".")
        if len(event_parts) >= 2:
            event_dict.setdefault("component", event_parts[0])
            event_dict.setdefault("operation", event_parts[1])
            if len(event_parts) >= 3:
                event_dict["sub_operation"] = ".".join(event_parts[2:])

    return event_dict


def add_error_enrichment(logger: FilteringBoundLogger,
                         wrapped_method,
                         event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add a fingerprint to error events for deduplication"""

    if wrapped_method in ("error", "critical", "exception"):
        error_key = f"{event_dict.get('component', 'unknown')}.{event_dict.get('operation', 'unknown')}"
        event_dict["error_fingerprint"] = error_key

    return event_dict


def format_for_humans(logger: FilteringBoundLogger,
                      name: str,
                      event_dict: Dict[str, Any]) -> str:
    """Human-readable format for development"""

    event_dict.pop("timestamp", None)
    level = event_dict.pop("level", "info").upper()
    event = event_dict.pop("event", "")
    time_str = time.strftime("%H:%M:%S", time.localtime())

    colors = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    reset = "\033[0m"
    color = colors.get(level, "")

    message = f"{color}[{time_str}] {level:8s} {event}{reset}"

    important_keys = ["user_id", "session_id", "error_id"]
    context_parts = [f"{key}={event_dict[key]}" for key in important_keys if key in event_dict]
    if context_parts:
        message += f" ({', '.join(context_parts)})"

    hidden = set(important_keys) | {"component", "operation", "sub_operation",
                                     "process_id", "logger"}
    remaining = {k: v for k, v in event_dict.items()
                 if k not in hidden and not k.startswith('_')}

    if remaining and len(remaining) <= 4:
        extra = ", ".join(f"{k}={v}" for k, v in remaining.items())
        message += f" | {extra}"

    return message


def configure_logging(development_mode: Optional[bool] = None) -> None:
    """Configure structured logging for NOVA"""

    if development_mode is None:
        development_mode = os.getenv("NOVA_ENV", config.ENV) != "production"

    log_level = get_log_level()

    processors = [
        structlog.stdlib.filter_by_level,
        add_event_hierarchy,
        add_error_enrichment,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if development_mode:
        processors.append(format_for_humans)
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])

        log_file = get_log_dir() / "nova.log"
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=5
        )

    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger("nova.logging")
    logger.info("logging.configured",
                development_mode=development_mode,
                log_level=logging.getLevelName(log_level))


def get_logger(name: str = "") -> FilteringBoundLogger:
    """Get a configured logger instance"""
    return structlog.get_logger(name)


class PerformanceLogger:
    """Helper for logging performance metrics"""

    def __init__(self, logger: FilteringBoundLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug("performance.start", operation=self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return
        duration = time.perf_counter() - self.start_time

        if exc_type:
            self.logger.warning("performance.failed",
                                operation=self.operation,
                                duration_seconds=round(duration, 3),
                                error_type=exc_type.__name__)
        else:
            self.logger.info("performance.completed",
                             operation=self.operation,
                             duration_seconds=round(duration, 3))


def log_performance(operation: str):
    """Decorator for automatic performance logging"""
    def decorator(func):
        logger = structlog.get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            async def async_wrapper(*args, **kwargs):
                with PerformanceLogger(logger, operation):
                    return await func(*args, **kwargs)
            async_wrapper.__name__ = func.__name__
            async_wrapper.__doc__ = func.__doc__
            return async_wrapper
        else:
            def sync_wrapper(*args, **kwargs):
                with PerformanceLogger(logger, operation):
                    return func(*args, **kwargs)
            sync_wrapper.__name__ = func.__name__
            sync_wrapper.__doc__ = func.__doc__
            return sync_wrapper
    return decorator
