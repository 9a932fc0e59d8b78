"""Common functions shared across all processor implementations."""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..core.exceptions import ImageOptimizerError
from ..core.image_utils import format_file_size
from ..core.logging_config import get_logger
from ..core.models import (
    BatchRun,
    ItemState,
    OptimizationOptions,
    OptimizationResult,
    ProcessedImage,
    ProgressEvent,
    Strategy,
)
from ..core.observability import LogContext, MetricsCollector, track_operation
from ..core.protocols import EnhancementGateway, LoggerProtocol, OptimizationService


class CancellationToken:
    """Cooperative cancellation flag checked before each item starts."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressTracker:
    """
    Counts attempted items and emits :class:`ProgressEvent` notifications.

    Progress is ``completed / total * 100``. Events are built under
    ``_lock``; listeners run under ``_notify_lock`` only, so they see events
    in order and may read :attr:`events`. A listener that raises is logged
    and does not stop the batch.
    """

    def __init__(self, total: int):
        self.total = total
        self.completed = 0
        self._events: List[ProgressEvent] = []
        self._listeners: List[Callable[[ProgressEvent], None]] = []
        self._lock = threading.Lock()
        self._notify_lock = threading.Lock()
        self._logger = get_logger("processor")

    def subscribe(self, listener: Callable[[ProgressEvent], None]) -> None:
        self._listeners.append(listener)

    @property
    def progress(self) -> float:
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100

    @property
    def events(self) -> List[ProgressEvent]:
        with self._lock:
            return list(self._events)

    def record(self, item: ProcessedImage) -> ProgressEvent:
        """Count ``item`` as attempted and notify listeners."""
        with self._notify_lock:
            with self._lock:
                self.completed += 1
                event = ProgressEvent(
                    index=item.index,
                    filename=item.original.filename,
                    state=item.state,
                    completed=self.completed,
                    total=self.total,
                    progress=self.progress,
                )
                self._events.append(event)
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    self._logger.error(
                        f"Progress listener failed for {event.filename}: "
                        f"{type(e).__name__}: {e}"
                    )
        return event


class OutcomeKind(str, Enum):
    """Which path produced an item's terminal state."""

    AI = "ai"
    DEFAULT = "default"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """Tagged result of processing one item: ai, default or failed."""

    kind: OutcomeKind
    result: Optional[OptimizationResult] = None
    error: Optional[BaseException] = None
    ai_error: Optional[BaseException] = None

    @classmethod
    def ai(cls, result: OptimizationResult) -> "ItemOutcome":
        return cls(kind=OutcomeKind.AI, result=result)

    @classmethod
    def default(
        cls, result: OptimizationResult, ai_error: Optional[BaseException] = None
    ) -> "ItemOutcome":
        return cls(kind=OutcomeKind.DEFAULT, result=result, ai_error=ai_error)

    @classmethod
    def failed(
        cls, error: BaseException, ai_error: Optional[BaseException] = None
    ) -> "ItemOutcome":
        return cls(kind=OutcomeKind.FAILED, error=error, ai_error=ai_error)


def run_default_path(
    item: ProcessedImage,
    options: OptimizationOptions,
    engine: OptimizationService,
    ai_error: Optional[BaseException] = None,
) -> ItemOutcome:
    """Run the deterministic engine and tag the outcome."""
    try:
        result = engine.optimize(item.original, options)
    except ImageOptimizerError as e:
        return ItemOutcome.failed(e, ai_error=ai_error)
    return ItemOutcome.default(result, ai_error=ai_error)


def run_ai_path(
    item: ProcessedImage,
    options: OptimizationOptions,
    engine: OptimizationService,
    gateway: EnhancementGateway,
) -> ItemOutcome:
    """Try the gateway; on any gateway failure fall back to the engine.

    Errors outside the gateway taxonomy also trigger the fallback; they are
    kept on the outcome as ``ai_error`` and logged by the caller.
    """
    try:
        result = gateway.enhance(item.original, options)
    except Exception as e:  # noqa: BLE001
        return run_default_path(item, options, engine, ai_error=e)
    return ItemOutcome.ai(result)


def apply_outcome(item: ProcessedImage, outcome: ItemOutcome) -> None:
    """Move ``item`` from processing to its terminal state."""
    if outcome.kind is OutcomeKind.FAILED:
        assert outcome.error is not None
        item.mark_failed(outcome.error)
    else:
        assert outcome.result is not None
        item.mark_succeeded(outcome.result, ai_optimized=outcome.kind is OutcomeKind.AI)


def process_single_image(
    item: ProcessedImage,
    strategy: Strategy,
    options: OptimizationOptions,
    engine: OptimizationService,
    gateway: Optional[EnhancementGateway],
    logger: LoggerProtocol,
    metrics_collector: Optional[MetricsCollector] = None,
    log_context: Optional[LogContext] = None,
) -> ItemOutcome:
    """Process one item: pending → processing → succeeded | failed."""
    context = (log_context or LogContext()).with_operation("process_image").with_metadata(
        index=item.index, filename=item.original.filename
    )

    with track_operation(
        "process_image", metrics_collector, filename=item.original.filename
    ) as metric:
        item.mark_processing()
        logger.debug("Processing image", context)

        if strategy is Strategy.AI_WITH_FALLBACK and gateway is not None:
            outcome = run_ai_path(item, options, engine, gateway)
        else:
            outcome = run_default_path(item, options, engine)

        apply_outcome(item, outcome)
        metric["outcome"] = outcome.kind.value
        if outcome.kind is OutcomeKind.FAILED:
            metric["success"] = False
            metric["error"] = str(outcome.error)

    if outcome.ai_error is not None:
        logger.warning(
            "AI optimization failed, falling back to default",
            context,
            error=f"{type(outcome.ai_error).__name__}: {outcome.ai_error}",
        )
    if outcome.kind is OutcomeKind.FAILED:
        logger.error(
            "Image optimization failed",
            context,
            error=f"{type(outcome.error).__name__}: {outcome.error}",
        )
    else:
        assert outcome.result is not None
        logger.info(
            "Optimized image",
            context,
            path=outcome.kind.value,
            size=f"{format_file_size(outcome.result.original_size)} -> "
            f"{format_file_size(outcome.result.optimized_size)}",
            ratio=f"{outcome.result.compression_ratio:.1f}%",
        )
    return outcome


def fail_unexpected(item: ProcessedImage, error: BaseException) -> None:
    """Record an error that escaped the strategy code on ``item``."""
    if item.state is ItemState.PENDING:
        item.mark_processing()
    if item.state is ItemState.PROCESSING:
        item.mark_failed(error)


def log_configuration(
    logger: LoggerProtocol,
    strategy: Strategy,
    options: OptimizationOptions,
    processor_name: str,
    total_items: int,
) -> None:
    """Log processing configuration."""
    logger.info("=" * 80)
    logger.info(f"{processor_name.upper()} IMAGE OPTIMIZER")
    logger.info("=" * 80)
    logger.info("PROCESSING OPTIONS:")
    logger.info(f"  Images:      {total_items}")
    logger.info(f"  Strategy:    {strategy.value}")
    logger.info(f"  Format:      {options.format.value}")
    quality_note = "" if options.format.is_lossy else " (ignored, lossless)"
    logger.info(f"  Quality:     {round(options.quality * 100)}%{quality_note}")
    logger.info(
        f"  Max size:    {options.max_width or 'unbounded'} x "
        f"{options.max_height or 'unbounded'}"
    )
    logger.info("=" * 80)


def log_final_statistics(logger: LoggerProtocol, run: BatchRun) -> None:
    """Log final processing statistics."""
    total_items = len(run.items)
    overall_rate = total_items / run.processing_time if run.processing_time > 0 else 0

    logger.info("=" * 80)
    logger.info("PROCESSING CANCELLED" if run.cancelled else "PROCESSING COMPLETED")
    logger.info("=" * 80)
    logger.info(f"Total execution time: {run.processing_time:.1f}s")
    logger.info(f"Overall processing rate: {overall_rate:.1f} items/sec")
    logger.info(f"Successfully optimized: {run.succeeded_count} ({run.ai_count} via AI)")
    logger.info(f"Errors encountered: {run.failed_count}")
    if run.pending_count:
        logger.info(f"Not attempted: {run.pending_count}")
    logger.info(
        f"Total size: {format_file_size(run.total_original_size)} -> "
        f"{format_file_size(run.total_optimized_size)} "
        f"({run.compression_ratio:.1f}% saved)"
    )
    logger.info("=" * 80)
