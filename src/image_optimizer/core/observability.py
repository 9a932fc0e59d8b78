"""Observability utilities for structured logging and metrics."""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .logging_config import get_logger


class LogLevel(Enum):
    """Log levels for structured logging."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class LogContext:
    """Context information for structured logging."""

    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_operation(self, operation: str) -> "LogContext":
        """Create new context with operation set."""
        return LogContext(
            correlation_id=self.correlation_id,
            operation=operation,
            component=self.component,
            metadata=self.metadata.copy(),
        )

    def with_metadata(self, **kwargs: Any) -> "LogContext":
        """Create new context with additional metadata."""
        new_metadata = self.metadata.copy()
        new_metadata.update(kwargs)
        return LogContext(
            correlation_id=self.correlation_id,
            operation=self.operation,
            component=self.component,
            metadata=new_metadata,
        )


class StructuredLogger:
    """Structured logger with context support.

    Messages are prefixed with ``[component] [operation] [correlation_id]``
    and suffixed with ``(key=value, ...)`` metadata.
    """

    def __init__(self, name: str = "image-optimizer", level: Optional[int] = None):
        self._logger = get_logger(name)
        if level is not None:
            self._logger.setLevel(level)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[LogContext] = None,
        **kwargs: Any,
    ) -> None:
        if context:
            formatted_message = f"[{context.correlation_id}] {message}"
            if context.operation:
                formatted_message = f"[{context.operation}] {formatted_message}"
            if context.component:
                formatted_message = f"[{context.component}] {formatted_message}"

            metadata = {**context.metadata, **kwargs}
            if metadata:
                metadata_str = ", ".join(f"{k}={v}" for k, v in metadata.items())
                formatted_message = f"{formatted_message} ({metadata_str})"
        elif kwargs:
            metadata_str = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            formatted_message = f"{message} ({metadata_str})"
        else:
            formatted_message = message

        getattr(self._logger, level.value.lower())(formatted_message)

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, context, **kwargs)


@dataclass
class PerformanceMetrics:
    """Performance metrics for operations."""

    operation: str
    start_time: float
    end_time: float
    success: bool
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        """Calculate operation duration in seconds."""
        return self.end_time - self.start_time


class MetricsCollector:
    """Thread-safe collector for performance metrics."""

    def __init__(self) -> None:
        self._metrics: List[PerformanceMetrics] = []
        self._lock = threading.Lock()

    def record_metric(self, metric: PerformanceMetrics) -> None:
        with self._lock:
            self._metrics.append(metric)

    def get_metrics(self, operation: Optional[str] = None) -> List[PerformanceMetrics]:
        """Get recorded metrics, optionally filtered by operation."""
        with self._lock:
            if operation:
                return [m for m in self._metrics if m.operation == operation]
            return self._metrics.copy()

    def get_summary(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """Get summary statistics for metrics."""
        metrics = self.get_metrics(operation)

        if not metrics:
            return {}

        durations = [m.duration for m in metrics]
        successful = [m for m in metrics if m.success]

        return {
            "total_operations": len(metrics),
            "successful_operations": len(successful),
            "failed_operations": len(metrics) - len(successful),
            "success_rate": len(successful) / len(metrics),
            "avg_duration": sum(durations) / len(durations),
            "min_duration": min(durations),
            "max_duration": max(durations),
            "total_duration": sum(durations),
        }


@contextmanager
def track_operation(
    operation: str,
    metrics_collector: Optional[MetricsCollector] = None,
    **metadata: Any,
) -> Iterator[Dict[str, Any]]:
    """Time the wrapped block and record it as a :class:`PerformanceMetrics`.

    The yielded dict can be filled with extra metadata inside the block;
    setting its ``success`` and ``error`` keys overrides the outcome. An
    exception marks the metric as failed and propagates.
    """
    start_time = time.time()
    extra: Dict[str, Any] = dict(metadata)
    success = False
    error_message = None
    try:
        yield extra
        success = bool(extra.pop("success", True))
        error_message = extra.pop("error", None)
    except Exception as e:
        error_message = str(e)
        raise
    finally:
        if metrics_collector is not None:
            metrics_collector.record_metric(
                PerformanceMetrics(
                    operation=operation,
                    start_time=start_time,
                    end_time=time.time(),
                    success=success,
                    error_message=error_message,
                    metadata=extra,
                )
            )
