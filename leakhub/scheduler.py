"""
Asynchronous evaluation queue.

Each request-bound submission schedules one evaluation of its request.
Evaluations run on a thread pool with no ordering guarantee; two
evaluations of the same request may run at the same time, which the
engine tolerates. Triggers are never deduplicated or cancelled.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

from .engine import ConsensusEngine, EvaluationResult
from .logger import get_logger
from .retry import exponential_backoff
from .storage import StorageError

logger = get_logger()


class EvaluationQueue:
    """
    Thread pool that runs ConsensusEngine.evaluate_request per request id.

    Storage failures rerun the whole evaluation with exponential backoff;
    once retries are exhausted the task's future raises RetryError.
    The queue keeps no reference to finished tasks: results wait in a
    buffer until join() collects them.

    Args:
        engine: Engine that evaluates requests
        max_workers: Worker threads
        max_retries: Retries after a StorageError
        base_delay: First backoff delay in seconds
    """

    def __init__(
        self,
        engine: ConsensusEngine,
        max_workers: int = 4,
        max_retries: int = 3,
        base_delay: float = 0.5,
    ):
        self.engine = engine
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="leakhub-eval")
        self._idle = threading.Condition()
        self._pending = 0
        self._results: List[EvaluationResult] = []
        self._evaluate = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(StorageError,),
            on_retry=self._on_retry,
        )(engine.evaluate_request)

    @property
    def pending(self) -> int:
        """Evaluations scheduled and not finished yet."""
        with self._idle:
            return self._pending

    def schedule(self, request_id: int) -> Future:
        """Fire-and-forget trigger; the returned future yields an EvaluationResult."""
        with self._idle:
            self._pending += 1
        try:
            future = self._executor.submit(self._run, request_id)
        except RuntimeError:
            self._task_finished()
            raise
        logger.debug("Evaluation scheduled", request_id=request_id)
        return future

    def join(self, timeout: Optional[float] = None) -> List[EvaluationResult]:
        """
        Wait for every evaluation scheduled so far.

        Returns:
            Results of the evaluations that succeeded since the last join,
            in completion order
        """
        with self._idle:
            self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)
            results, self._results = self._results, []
        return results

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def _run(self, request_id: int) -> EvaluationResult:
        try:
            result = self._evaluate(request_id)
        except Exception as e:
            logger.record_error(type(e).__name__)
            logger.error("Evaluation gave up", request_id=request_id, error=str(e))
            self._task_finished()
            raise
        self._task_finished(result)
        return result

    def _task_finished(self, result: Optional[EvaluationResult] = None) -> None:
        with self._idle:
            if result is not None:
                self._results.append(result)
            self._pending -= 1
            self._idle.notify_all()

    @staticmethod
    def _on_retry(attempt: int, error: Exception, delay: float) -> None:
        logger.warning("Evaluation failed, retrying", attempt=attempt, delay=delay, error=str(error))
