"""Batch runners with different concurrency strategies."""

from .common import (
    CancellationToken,
    ItemOutcome,
    OutcomeKind,
    ProgressTracker,
    log_configuration,
    log_final_statistics,
    process_single_image,
)
from .serial import process_batch as serial_process_batch
from .multithread import process_batch as multithread_process_batch

__all__ = [
    "CancellationToken",
    "ItemOutcome",
    "OutcomeKind",
    "ProgressTracker",
    "log_configuration",
    "log_final_statistics",
    "process_single_image",
    "serial_process_batch",
    "multithread_process_batch",
]
