"""
Structured Logging & Monitoring Stubs
Shared structlog setup plus latency/counter hooks used by indexing and search.
"""

import logging
import sys
import time
import inspect
from functools import wraps
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.core.config import settings

# Chatty third-party loggers (model downloads, per-request HTTP lines)
_NOISY_LOGGERS = ("httpx", "httpcore", "sentence_transformers", "urllib3", "PIL")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp every entry with the service and its active backends."""
    event_dict["app"] = settings.app_name
    event_dict["environment"] = settings.environment
    event_dict.setdefault("encoder", settings.encoder_type)
    event_dict.setdefault("embedding_store", settings.embedding_store_type)
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging

    JSON lines when ``log_json`` is enabled, colored console output otherwise.
    Third-party loggers are capped at WARNING unless ``log_level`` is DEBUG.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    if settings.log_json:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    level = logging.getLevelName(settings.log_level)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    if settings.log_level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("product_indexed", product_id="...", records=4)
    """
    return structlog.get_logger(name)


# --- Monitoring stubs (swap for Prometheus/OTEL counters) ---
_METRICS_COUNTER: dict[str, int] = {}


def _metric_key(name: str, labels: dict[str, Any]) -> str:
    return name + str(sorted(labels.items()))


def metrics_counter(name: str, **labels: Any) -> None:
    """Increment an in-process counter (index failures, fallbacks, dead letters)."""
    key = _metric_key(name, labels)
    _METRICS_COUNTER[key] = _METRICS_COUNTER.get(key, 0) + 1


def get_metric(name: str, **labels: Any) -> int:
    """Current value of a counter, 0 when it was never incremented."""
    return _METRICS_COUNTER.get(_metric_key(name, labels), 0)


def reset_metrics() -> None:
    _METRICS_COUNTER.clear()


def _log_latency(func, operation: str, started: float, failed: bool) -> None:
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger = get_logger(func.__module__)
    if elapsed_ms >= settings.slow_operation_ms:
        logger.warning("slow_operation", operation=operation, latency_ms=elapsed_ms, failed=failed)
    else:
        logger.info("latency", operation=operation, latency_ms=elapsed_ms, failed=failed)


def measure_latency(operation: str):
    """Latency decorator for async and sync callables; slow calls log a warning."""

    def decorator(func):
        is_coro = inspect.iscoroutinefunction(func)

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            started = time.perf_counter()
            failed = True
            try:
                result = await func(*args, **kwargs)
                failed = False
                return result
            finally:
                _log_latency(func, operation, started, failed)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            failed = True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                _log_latency(func, operation, started, failed)

        return async_wrapper if is_coro else sync_wrapper

    return decorator
