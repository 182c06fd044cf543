"""Structured fan-out helpers.

Runs a callable over a group of items on a thread pool and joins on every
outcome. Failures are captured as values so callers can tally results
without relying on exception propagation.
"""

from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T, R]):
    """Result of running one item through a fan-out.

    Attributes:
        item: The input item
        value: Return value when the call succeeded
        error: Exception raised by the call, if any
    """

    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fan_out(
    func: Callable[[T], R],
    items: Sequence[T],
    max_workers: int = 10,
) -> List[Outcome[T, R]]:
    """Run ``func`` over every item concurrently and wait for all of them.

    Never short-circuits: one item's exception does not prevent the others
    from running, and outcomes are returned in input order. Each call runs in
    a copy of the caller's context, so log_context() fields set around the
    fan-out appear in the workers' log records.

    Args:
        func: Callable applied to each item
        items: Items to process
        max_workers: Upper bound on concurrently running calls

    Returns:
        One Outcome per item, in the same order as ``items``
    """
    if not items:
        return []

    workers = max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(copy_context().run, func, item) for item in items]

    outcomes: List[Outcome[T, R]] = []
    for item, future in zip(items, futures):
        error = future.exception()
        if error is None:
            outcomes.append(Outcome(item=item, value=future.result()))
        else:
            outcomes.append(Outcome(item=item, error=error))
    return outcomes
