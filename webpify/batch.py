from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence
import threading
import time

from .engine import convert_task
from .plan import ConversionTask
from .results import ConversionResult, savings_percent
from .settings import ConvertSettings


# Called once per finished task with (completion_index, total, result).
ResultCallback = Callable[[int, int, ConversionResult], None]


@dataclass(frozen=True)
class RunSummary:
    total_files: int
    successful: int
    failed: int
    total_original_bytes: int
    total_new_bytes: int
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float
    total_found: int = 0
    skipped: int = 0

    @property
    def saved_bytes(self) -> int:
        return self.total_original_bytes - self.total_new_bytes

    @property
    def savings_percent(self) -> float:
        # From the summed sizes, not an average of per-file percentages.
        return savings_percent(self.total_original_bytes, self.total_new_bytes)


class Aggregator:
    """
    Fan-in point for worker results.

    Counters, the completion index and the on_result callback all run
    under one lock, so totals never lose updates and progress lines are
    printed one at a time.
    """

    def __init__(self, total: int, on_result: Optional[ResultCallback] = None) -> None:
        self.total = total
        self.on_result = on_result
        self._results: List[ConversionResult] = []
        self._completed = 0
        self._successful = 0
        self._failed = 0
        self._original_bytes = 0
        self._new_bytes = 0
        self._lock = threading.Lock()

    # Read-only views; only record() mutates the tallies.

    @property
    def results(self) -> List[ConversionResult]:
        with self._lock:
            return list(self._results)

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def successful(self) -> int:
        return self._successful

    @property
    def failed(self) -> int:
        return self._failed

    @property
    def original_bytes(self) -> int:
        return self._original_bytes

    @property
    def new_bytes(self) -> int:
        return self._new_bytes

    def record(self, r: ConversionResult) -> int:
        with self._lock:
            self._completed += 1
            self._results.append(r)

            # Byte totals only count files that were actually converted.
            if r.success:
                self._successful += 1
                self._original_bytes += r.original_bytes
                self._new_bytes += r.new_bytes
            else:
                self._failed += 1

            if self.on_result:
                self.on_result(self._completed, self.total, r)

            return self._completed

    def finalize(
        self,
        started_at: datetime,
        finished_at: datetime,
        elapsed_seconds: float,
        total_found: int = 0,
        skipped: int = 0,
    ) -> RunSummary:
        with self._lock:
            return RunSummary(
                total_files=self.total,
                successful=self.successful,
                failed=self.failed,
                total_original_bytes=self.original_bytes,
                total_new_bytes=self.new_bytes,
                started_at=started_at,
                finished_at=finished_at,
                elapsed_seconds=elapsed_seconds,
                total_found=total_found,
                skipped=skipped,
            )


def process_batch(
    tasks: Sequence[ConversionTask],
    settings: ConvertSettings,
    on_result: Optional[ResultCallback] = None,
    total_found: Optional[int] = None,
    skipped: int = 0,
) -> tuple[List[ConversionResult], RunSummary]:
    """
    Convert every task on a pool of settings.effective_workers threads.

    At most that many tasks are in flight at once: submission blocks on a
    semaphore until a slot frees up. A failing task never stops the
    others. Returns once the pool has drained; results are in completion
    order.
    """
    workers = settings.effective_workers
    total = len(tasks)
    agg = Aggregator(total, on_result)

    started_at = datetime.now().astimezone()
    t0 = time.perf_counter()

    slots = threading.BoundedSemaphore(workers)

    def run_one(task: ConversionTask) -> None:
        try:
            agg.record(convert_task(task, settings))
        finally:
            slots.release()

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webpify") as pool:
        futures = []
        for task in tasks:
            slots.acquire()
            futures.append(pool.submit(run_one, task))

        # Surface bugs in the worker wrapper itself; per-file errors never get here.
        for f in futures:
            f.result()

    elapsed = time.perf_counter() - t0
    finished_at = datetime.now().astimezone()

    summary = agg.finalize(
        started_at=started_at,
        finished_at=finished_at,
        elapsed_seconds=elapsed,
        total_found=total if total_found is None else total_found,
        skipped=skipped,
    )
    return agg.results, summary
