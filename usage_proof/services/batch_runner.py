"""
Bounded-concurrency batch runner.
Runs independent async jobs over a list with a fixed pool of lanes,
writing each result at its item's index.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from usage_proof.core.cancellation import CancellationSignal
from usage_proof.core.config import settings
from usage_proof.core.exceptions import EvaluationCancelled
from usage_proof.core.logging_config import get_logger
from usage_proof.core.models import BatchProgress

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Worker = Callable[[T, int], Awaitable[R]]
ErrorHandler = Callable[[T, int, Exception], R]
ProgressCallback = Callable[[BatchProgress], None]


class BatchRunner:
    """
    Fixed pool of workers; a finished lane immediately pulls the next item.

    Results always come back in input order. A failing worker is converted to
    a per-item result via `on_error` (or the exception itself is stored);
    EvaluationCancelled stops new work and fails the whole batch once the
    in-flight workers settle. Each progress callback gets a BatchProgress
    whose rows are only the slots written so far.
    """

    def __init__(self, concurrency: Optional[int] = None):
        self.concurrency = settings.batch_concurrency if concurrency is None else concurrency
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")

    async def run(
        self,
        items: Sequence[T],
        worker: Worker,
        on_progress: Optional[ProgressCallback] = None,
        signal: Optional[CancellationSignal] = None,
        on_error: Optional[ErrorHandler] = None
    ) -> List[R]:
        if not items:
            return []

        if signal is not None:
            signal.raise_if_cancelled()

        total = len(items)
        results: List[Optional[R]] = [None] * total
        filled: List[bool] = [False] * total
        state = {"next": 0, "completed": 0, "cancelled": False}

        def should_stop() -> bool:
            if signal is not None and signal.cancelled:
                state["cancelled"] = True
            return state["cancelled"]

        async def lane() -> None:
            while not should_stop() and state["next"] < total:
                index = state["next"]
                state["next"] += 1
                item = items[index]

                try:
                    results[index] = await worker(item, index)
                    filled[index] = True
                except EvaluationCancelled:
                    state["cancelled"] = True
                except Exception as e:
                    logger.warning(
                        "Batch item failed",
                        index=index,
                        error=str(e),
                        error_type=type(e).__name__
                    )
                    results[index] = on_error(item, index, e) if on_error else e
                    filled[index] = True

                state["completed"] += 1
                if on_progress is not None:
                    on_progress(BatchProgress(
                        processed=state["completed"],
                        total=total,
                        rows=[result for result, done in zip(results, filled) if done]
                    ))

        lanes = min(self.concurrency, total)
        await asyncio.gather(*(lane() for _ in range(lanes)))

        if should_stop():
            logger.info(
                "Batch cancelled",
                completed=state["completed"],
                total=total
            )
            raise EvaluationCancelled()

        return results
