"""
Bounded parallel fan-out over hosts.

Wide stages (data distribution, remote stop) run one operation per host on a
thread pool with a fixed number of workers. The call returns only when every
started operation has finished. After the first failure no new operations
are started; every failure is logged and the first one becomes the cause of
the raised ``FanOutError``. A missing required variable is re-raised as is.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional, TypeVar

from .exceptions import FanOutError, MissingVariableError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _default_label(item) -> str:
    return getattr(item, "id", None) or str(item)


def fan_out(
    items: Iterable[T],
    operation: Callable[[T], R],
    concurrency: int,
    name: str = "operation",
    label: Optional[Callable[[T], str]] = None
) -> List[R]:
    """
    Run ``operation`` for every item with at most ``concurrency`` in flight.

    Args:
        items: Targets (usually hosts)
        operation: Per-item callable
        concurrency: Maximum number of operations in flight
        name: Operation name used in logs and errors
        label: Item label for logs (defaults to ``item.id``)

    Returns:
        Results in the order of ``items``.

    Raises:
        ValueError: If concurrency is less than 1
        FanOutError: If any operation raised
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    label = label or _default_label
    targets = list(items)
    if not targets:
        logger.debug(f"{name}: no targets")
        return []

    results: List[Optional[R]] = [None] * len(targets)
    failures = []

    workers = min(concurrency, len(targets))
    logger.debug(f"{name}: {len(targets)} target(s), {workers} worker(s)")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {
            executor.submit(operation, target): index
            for index, target in enumerate(targets)
        }
        for future in as_completed(future_map):
            if future.cancelled():
                continue
            index = future_map[future]
            error = future.exception()
            if error is None:
                results[index] = future.result()
                continue

            target_label = label(targets[index])
            logger.error(f"{name} failed on {target_label}: {error}")
            failures.append((target_label, error))
            if len(failures) == 1:
                for pending in future_map:
                    pending.cancel()

    if failures:
        first = failures[0][1]
        if isinstance(first, MissingVariableError):
            raise first
        raise FanOutError(name, failures) from first

    return results
