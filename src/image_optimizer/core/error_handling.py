# src/image_optimizer/core/error_handling.py

import functools
import logging
import time
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import UploadError

RETRYABLE_S3_ERROR_CODES = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "InternalError",
)


def with_s3_error_handling(func):
    """
    Convert botocore failures raised by ``func`` into :class:`UploadError`.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + "." + func.__name__)
        try:
            return func(*args, **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 operation '{func.__name__}' failed: {e}")
            raise UploadError(f"S3 operation failed in {func.__name__}: {e}") from e
    return wrapper


def _is_retryable(error: UploadError) -> bool:
    cause = error.__cause__
    if isinstance(cause, ClientError):
        code = cause.response.get("Error", {}).get("Code")
        return code in RETRYABLE_S3_ERROR_CODES
    return False


def retry_s3_operation(max_attempts=3, initial_delay=1.0, backoff_factor=2.0):
    """
    Decorator to retry S3 operations with exponential backoff.

    Only :class:`UploadError` caused by a throttling or transient botocore
    ``ClientError`` is retried; every other error is raised immediately.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + "." + func.__name__)
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except UploadError as e:
                    if not _is_retryable(e):
                        logger.error(f"S3 operation '{func.__name__}' failed with non-retryable error: {e}")
                        raise
                    if attempt >= max_attempts:
                        logger.error(
                            f"S3 operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"S3 operation '{func.__name__}' failed. Attempt {attempt}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation", logger=None):
        self.operation_name = operation_name
        self.errors: List[Dict[str, Any]] = []
        self.logger = logger or logging.getLogger(
            self.__class__.__module__ + "." + self.__class__.__name__
        )

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}"
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.warning(
                    f"  Error {i + 1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        # Exceptions raised inside the block are never suppressed.
        return False

    def add_error(self, error_message, item_identifier="Unknown item"):
        """
        Report an error for a specific item from within the ``with`` block.

        Args:
            error_message: The error message or exception.
            item_identifier: A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}"
        )

    @property
    def error_count(self) -> int:
        return len(self.errors)
