"""Chunked worker-thread evaluation with cooperative cancellation."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import os
import threading
from typing import Callable, Sequence, TypeVar

from wgen.errors import ComputeAbort


T = TypeVar("T")
R = TypeVar("R")

Progress = Callable[[float], None]

# More chunks than workers so cancellation is noticed quickly.
CHUNKS_PER_WORKER = 4


def resolve_workers(workers: int | None) -> int:
    if workers is None:
        return max(1, os.cpu_count() or 1)
    return max(1, int(workers))


def check_cancel(cancel: threading.Event | None) -> None:
    """Raise `ComputeAbort` if `cancel` has been set."""

    if cancel is not None and cancel.is_set():
        raise ComputeAbort("computation cancelled")


def report(progress: Progress | None, fraction: float) -> None:
    if progress is not None:
        progress(min(max(float(fraction), 0.0), 1.0))


def row_bands(height: int, count: int) -> list[tuple[int, int]]:
    """Split [0, height) into at most `count` contiguous, disjoint row ranges."""

    count = max(1, min(int(count), int(height)))
    edges = [round(i * height / count) for i in range(count + 1)]
    return [(edges[i], edges[i + 1]) for i in range(count) if edges[i + 1] > edges[i]]


def run_chunks(
    func: Callable[[T], R],
    chunks: Sequence[T],
    *,
    workers: int | None = None,
    cancel: threading.Event | None = None,
    progress: Progress | None = None,
) -> list[R]:
    """Evaluate `func` over `chunks` on a transient thread pool, results in chunk order.

    Cancellation is checked before each chunk starts; chunks already running
    finish, then `ComputeAbort` is raised. `progress` receives the finished
    fraction after each chunk, in chunk order.
    """

    n_workers = resolve_workers(workers)
    total = len(chunks)

    def task(chunk: T) -> R | None:
        if cancel is not None and cancel.is_set():
            return None
        return func(chunk)

    results = []
    if n_workers == 1 or total <= 1:
        for done, chunk in enumerate(chunks, start=1):
            check_cancel(cancel)
            results.append(func(chunk))
            report(progress, done / total)
        return results

    with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="wgen-worker") as executor:
        for done, result in enumerate(executor.map(task, chunks), start=1):
            results.append(result)
            if not (cancel is not None and cancel.is_set()):
                report(progress, done / total)
    check_cancel(cancel)
    return results  # type: ignore[return-value]


def run_row_bands(
    func: Callable[[int, int], None],
    height: int,
    *,
    workers: int | None = None,
    cancel: threading.Event | None = None,
    progress: Progress | None = None,
) -> None:
    """Call `func(y0, y1)` for disjoint row bands covering [0, height).

    `func` must only write rows y0..y1-1 of its output.
    """

    n_workers = resolve_workers(workers)
    bands = row_bands(height, n_workers * CHUNKS_PER_WORKER)
    run_chunks(lambda band: func(band[0], band[1]), bands, workers=n_workers, cancel=cancel, progress=progress)
