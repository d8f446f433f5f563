"""Order-preserving parallel map over a bounded ``ThreadPoolExecutor``.

Used by the batch runner to categorize many transactions at once. The engine
is thread-safe, so mappers can share one instance.

- ``concurrency``: maximum number of mapper calls running at once.
- ``stop_on_error`` (default True): the first failure propagates and pending
  work is cancelled. When False every item runs and failures are raised
  together as an ``ExceptionGroup``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def _run_sequential(
    items: list[InT], mapper: Callable[[InT], OutT], *, stop_on_error: bool
) -> list[OutT]:
    out: list[OutT] = []
    errors: list[Exception] = []
    for item in items:
        try:
            out.append(mapper(item))
        except Exception as e:  # noqa: BLE001
            if stop_on_error:
                raise
            errors.append(e)
    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
    return out


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight.

    The result list is in input order. A concurrency of 1 runs inline on the
    calling thread.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if concurrency == 1 or len(items) <= 1:
        return _run_sequential(items, mapper, stop_on_error=stop_on_error)

    with ThreadPoolExecutor(
        max_workers=min(concurrency, len(items)), thread_name_prefix="p_map"
    ) as pool:
        futures: list[Future[OutT]] = [pool.submit(mapper, item) for item in items]
        if stop_on_error:
            done, _pending = wait(futures, return_when=FIRST_EXCEPTION)
            for fut in done:
                exc = fut.exception()
                if exc is not None:
                    # Not-yet-started work is dropped; running calls finish.
                    for f in futures:
                        f.cancel()
                    raise exc
        else:
            wait(futures)

    errors = [e for f in futures if (e := f.exception()) is not None]
    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
    return [f.result() for f in futures]


__all__ = ["p_map"]
