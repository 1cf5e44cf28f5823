"""
Worker pool with an explicit acquire/release lifecycle.

The pool is created by the caller for a search or comparison session, passed
into every search of that session and released once the session is over.
There is no process-wide pool.

Example:
    from imbalance_eval.pool import WorkerPool

    with WorkerPool(max_workers=4) as pool:
        results = pool.run(task_fn, [(a, b), (c, d)])
"""

import logging
import threading
from typing import Any, Callable, List, Optional, Sequence, Tuple

from joblib import Parallel, cpu_count, delayed

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    joblib-backed pool for independent (candidate, fold) training tasks.

    Args:
        max_workers: Maximum concurrent workers; defaults to the CPU count.
        backend: joblib backend name (``loky``, ``threading``,
            ``multiprocessing`` or ``sequential``).
    """

    def __init__(self, max_workers: Optional[int] = None, backend: str = "loky") -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers or cpu_count()
        self.backend = backend
        if backend == "sequential":
            self.max_workers = 1
        self._parallel: Optional[Parallel] = None

    @property
    def active(self) -> bool:
        return self._parallel is not None

    def acquire(self) -> "WorkerPool":
        """Start the workers. Raises RuntimeError if already acquired."""
        if self._parallel is not None:
            raise RuntimeError("Worker pool is already acquired; release it before reacquiring")
        parallel = Parallel(n_jobs=self.max_workers, backend=self.backend)
        parallel.__enter__()
        self._parallel = parallel
        logger.info(f"Acquired worker pool ({self.backend}, {self.max_workers} worker(s))")
        return self

    def release(self) -> None:
        """Shut the workers down. Releasing an idle pool is a no-op."""
        if self._parallel is None:
            return
        parallel, self._parallel = self._parallel, None
        parallel.__exit__(None, None, None)
        logger.info("Released worker pool")

    def __enter__(self) -> "WorkerPool":
        return self.acquire()

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        self.release()

    def run(
        self,
        fn: Callable[..., Any],
        tasks: Sequence[Tuple[Any, ...]],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Any]:
        """
        Run ``fn(*task)`` for every task and return results in task order.

        Tasks are dispatched in batches of ``max_workers``. The cancel flag is
        checked before each batch; in-flight batches finish, later ones are
        never dispatched, so the result list may be shorter than ``tasks``.

        Raises:
            RuntimeError: If the pool has not been acquired.
        """
        if self._parallel is None:
            raise RuntimeError("Worker pool must be acquired before running tasks")

        results: List[Any] = []
        for start in range(0, len(tasks), self.max_workers):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    f"Cancellation requested; {len(tasks) - start} of {len(tasks)} task(s) not dispatched"
                )
                break
            batch = tasks[start:start + self.max_workers]
            results.extend(self._parallel(delayed(fn)(*task) for task in batch))
        return results
