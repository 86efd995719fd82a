"""Symmetric left/right work, run concurrently or in sequence."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

L = TypeVar("L")
R = TypeVar("R")


def run_pair(
    left_fn: Callable[[], L],
    right_fn: Callable[[], R],
    parallel: bool,
) -> tuple[L, R]:
    """Run two independent tasks and wait for both.

    OpenCV releases the GIL inside detection and matching, so the two
    sides overlap when run on threads. Each task only writes its own
    return value; results are identical in both modes.

    Args:
        left_fn: Task for the left side (or the LR direction)
        right_fn: Task for the right side (or the RL direction)
        parallel: Run on two worker threads if True, else left then right

    Returns:
        Tuple of (left result, right result)
    """
    if not parallel:
        return left_fn(), right_fn()

    with ThreadPoolExecutor(max_workers=2) as executor:
        left_future = executor.submit(left_fn)
        right_future = executor.submit(right_fn)
        return left_future.result(), right_future.result()
