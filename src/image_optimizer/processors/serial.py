"""Serial processor implementation - processes images one by one."""

from typing import Callable, List

from ..core.logging_config import get_logger
from ..core.models import ProcessedImage
from .common import CancellationToken, ProgressTracker, fail_unexpected


def process_batch(
    items: List[ProcessedImage],
    handle_item: Callable[[ProcessedImage], object],
    tracker: ProgressTracker,
    cancel_token: CancellationToken,
) -> List[ProcessedImage]:
    """
    Processes a batch of images serially, one by one, in the current thread.

    The cancellation token is checked before each item starts; items after
    a cancellation are left pending. Every attempted item is recorded on the
    tracker, whether it succeeded or failed.

    Args:
        items: The items to process, in input order.
        handle_item: Moves one item to its terminal state.
        tracker: Progress tracker that emits one event per attempted item.
        cancel_token: Cooperative cancellation flag.

    Returns:
        The same list of items, in input order.
    """
    logger = get_logger("processor")

    for item in items:
        if cancel_token.cancelled:
            logger.info(f"Cancelled before item {item.index} ({item.original.filename})")
            break
        try:
            handle_item(item)
        except Exception as e:  # noqa: BLE001
            logger.error(
                f"[{item.original.filename}] Unexpected processing error: {e}",
                exc_info=True,
            )
            fail_unexpected(item, e)
        tracker.record(item)

    return items
