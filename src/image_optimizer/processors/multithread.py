"""Multithreaded processor implementation - uses thread pool for parallelism."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List

from ..core.logging_config import get_logger
from ..core.models import ProcessedImage
from .common import CancellationToken, ProgressTracker, fail_unexpected


def process_batch(
    items: List[ProcessedImage],
    handle_item: Callable[[ProcessedImage], object],
    tracker: ProgressTracker,
    cancel_token: CancellationToken,
    max_workers: int = 4,
) -> List[ProcessedImage]:
    """
    Process a batch of images using a thread pool.

    Progress is counted from completions, so events stay monotonic even
    though items finish out of order. Each item is isolated: workers only
    mutate their own item. The returned list is in input order.

    Args:
        items: The items to process
        handle_item: Moves one item to its terminal state
        tracker: Progress tracker shared by all workers
        cancel_token: Checked by each worker before it starts an item
        max_workers: Upper bound on worker threads

    Returns:
        The items, sorted by input index
    """
    logger = get_logger("processor")
    max_workers = max(1, min(max_workers, len(items)))

    def worker(item: ProcessedImage) -> bool:
        if cancel_token.cancelled:
            return False
        handle_item(item)
        return True

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_item = {executor.submit(worker, item): item for item in items}

        for future in as_completed(future_to_item):
            item = future_to_item[future]
            try:
                attempted = future.result()
            except Exception as e:  # noqa: BLE001
                logger.error(
                    f"[{item.original.filename}] Unexpected processing error: {e}",
                    exc_info=True,
                )
                fail_unexpected(item, e)
                attempted = True
            if attempted:
                tracker.record(item)

    if cancel_token.cancelled:
        logger.info("Batch cancelled; unstarted items left pending")

    return sorted(items, key=lambda item: item.index)
