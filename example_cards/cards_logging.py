"""Logging and observability utilities for the example card catalog.

This module provides structured logging, operation timing,
and observability hooks for catalog operations.
"""

from __future__ import annotations

import json
import sys
import time
import logging as std_logging
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Union
from functools import wraps

LOGGER_NAME = "example_cards"
MAX_SAMPLES_PER_METRIC = 200


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Setup structured logging for the catalog server.

    Console output goes to stderr because stdout carries the MCP stdio transport.
    """

    if isinstance(log_level, str):
        log_level = log_level.upper()

    logger = std_logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()

    detailed_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = std_logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file)
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.info("Example card logging initialized")


class JsonFormatter(std_logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: std_logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class PerformanceMonitor:
    """Keep the most recent timing samples for catalog operations.

    Each metric name holds at most ``max_samples`` entries; older samples are
    dropped as new ones arrive.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES_PER_METRIC):
        self.max_samples = max_samples
        self.metrics: Dict[str, Deque[Dict[str, Any]]] = {}

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        metric = {"timestamp": _utc_now(), "name": name, "value": value, "tags": tags or {}}
        samples = self.metrics.get(name)
        if samples is None:
            samples = self.metrics[name] = deque(maxlen=self.max_samples)
        samples.append(metric)

        std_logging.getLogger(f"{LOGGER_NAME}.performance").debug(
            f"Metric recorded: {name}={value}", extra={"extra_fields": metric}
        )

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        if name:
            return {name: list(self.metrics.get(name, ()))}
        return {key: list(samples) for key, samples in self.metrics.items()}

    def clear(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


@contextmanager
def _tracked(channel: str, operation_name: str, fields: Dict[str, Any], record_metric: bool = False):
    logger = std_logging.getLogger(f"{LOGGER_NAME}.{channel}")
    fields = {"operation": operation_name, **fields}
    started = time.perf_counter()
    logger.debug(f"Starting operation: {operation_name}", extra={"extra_fields": {**fields, "status": "started"}})

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - started
        error_type = type(e).__name__
        if record_metric:
            performance_monitor.record_metric(
                f"{operation_name}_duration", duration, {"status": "error", "error_type": error_type}
            )
        logger.error(
            f"Failed operation: {operation_name} after {duration:.3f}s - {e}",
            extra={"extra_fields": {
                **fields,
                "status": "failed",
                "duration": duration,
                "error_type": error_type,
                "error_message": str(e),
            }},
        )
        raise

    duration = time.perf_counter() - started
    if record_metric:
        performance_monitor.record_metric(f"{operation_name}_duration", duration, {"status": "success"})
    logger.info(
        f"Completed operation: {operation_name} in {duration:.3f}s",
        extra={"extra_fields": {**fields, "status": "completed", "duration": duration}},
    )


def log_performance(operation_name: str):
    """Decorator recording the duration and outcome of each call as a metric."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            with _tracked("performance", operation_name, {}, record_metric=True):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def log_operation(operation_name: str, **extra_fields):
    """Context manager logging the start, end and failure of a block with custom fields."""
    return _tracked("operations", operation_name, extra_fields)


class ObservabilityHooks:
    """Callbacks fired on catalog events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., None]]] = {}
        self.logger = std_logging.getLogger(f"{LOGGER_NAME}.observability")

    def register_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., None]) -> None:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Run every callback for ``event_type``; a failing hook is logged and skipped."""
        if event_type in self.hooks:
            self.logger.debug(f"Triggering {len(self.hooks[event_type])} hooks for event: {event_type}")
            for hook in list(self.hooks[event_type]):
                try:
                    hook(**data)
                except Exception as e:
                    self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_catalog_event(self, event_type: str, card_id: Optional[str] = None, **data) -> None:
        """Log a catalog event and trigger hooks."""
        event_data = {
            "timestamp": _utc_now(),
            "event_type": event_type,
            "card_id": card_id,
            **data
        }

        self.logger.info(f"Catalog event: {event_type}", extra={"extra_fields": event_data})

        hook_data = {k: v for k, v in event_data.items() if k != "event_type"}
        self.trigger_hooks(event_type, **hook_data)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log an error with rich context information."""
    logger = std_logging.getLogger(f"{LOGGER_NAME}.errors")

    error_data = {
        "timestamp": _utc_now(),
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **extra_fields
    }

    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": error_data},
        exc_info=error
    )


def log_cards_listed(count: int, filters: Dict[str, Any], **extra_fields):
    observability_hooks.log_catalog_event("cards_listed", count=count, filters=filters, **extra_fields)


def log_card_downloaded(card_id: str, destination: str, renamed: bool, **extra_fields):
    observability_hooks.log_catalog_event(
        "card_downloaded",
        card_id=card_id,
        destination=destination,
        renamed=renamed,
        **extra_fields
    )


def log_catalog_validated(cards_checked: int, errors: int, warnings: int, **extra_fields):
    observability_hooks.log_catalog_event(
        "catalog_validated",
        cards_checked=cards_checked,
        errors=errors,
        warnings=warnings,
        **extra_fields
    )
