import logging
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _check_cancel(cancel_event: Optional[threading.Event], what: str):
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("cancellation requested; skipping %s", what)
        raise CancelledError(f"cancelled before {what}")


def fan_out(fn: Callable[[T], R], items: Iterable[T], *,
            max_workers: Optional[int] = None,
            cancel_event: Optional[threading.Event] = None,
            on_progress: Optional[Callable[[], None]] = None) -> List[R]:
    """
    Run `fn` over `items` on a thread pool and wait for all of them (join barrier).

    Results come back in input order. A set `cancel_event` stops jobs that have not
    started yet; the first failure cancels pending jobs and is re-raised.
    """
    items = list(items)
    _check_cancel(cancel_event, "fan-out")
    if not items:
        return []

    def _job(item: T) -> R:
        _check_cancel(cancel_event, "job start")
        return fn(item)

    results: List[Optional[R]] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_job, item): idx for idx, item in enumerate(items)}
        try:
            for fut in as_completed(futures):
                results[futures[fut]] = fut.result()
                if on_progress:
                    on_progress()
        except BaseException:
            for fut in futures:
                fut.cancel()
            raise
    return results  # type: ignore[return-value]
