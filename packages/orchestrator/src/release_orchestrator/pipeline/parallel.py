from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def fan_out(
    items: Sequence[T],
    fn: Callable[[T], R],
    *,
    max_workers: int,
    thread_name_prefix: str = "stage",
) -> list[R]:
    """
    Apply `fn` to every item on a worker pool and return results in input order.

    Barrier semantics: returns only when every submitted call has finished. On
    the first exception, calls that have not started are cancelled, calls in
    flight are allowed to finish, and that first exception is re-raised.
    """
    if not items:
        return []

    workers = max(1, min(max_workers, len(items)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=thread_name_prefix) as pool:
        futures: list[Future[R]] = [pool.submit(fn, item) for item in items]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        first_exc: BaseException | None = None
        for f in futures:
            if f in done and not f.cancelled() and f.exception() is not None:
                first_exc = f.exception()
                break

        if first_exc is not None:
            for f in pending:
                f.cancel()
            wait(futures)
            raise first_exc

        return [f.result() for f in futures]
