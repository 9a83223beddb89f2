"""Bounded fan-out of independent backend reads."""

from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_bounded(func: Callable[[T], R], items: Iterable[T], *, max_workers: int) -> list[R]:
    """Run ``func`` over ``items`` with at most ``max_workers`` calls in flight.

    Results come back in input order. The first failure (in input order) is
    re-raised and calls that have not started yet are cancelled; calls already
    running finish in the background without delaying the error.
    """
    pending = list(items)
    if not pending:
        return []
    if max_workers < 1:
        msg = f"max_workers must be positive, got {max_workers}"
        raise ValueError(msg)

    pool = ThreadPoolExecutor(
        max_workers=min(max_workers, len(pending)), thread_name_prefix="misskey-fetch"
    )
    futures: list[Future[R]] = [pool.submit(func, item) for item in pending]
    try:
        results = [f.result() for f in futures]
    except BaseException:
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    pool.shutdown()
    return results
