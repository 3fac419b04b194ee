"""
Cooperative cancellation for evaluation runs.
One signal is created per run and threaded through every tier and upstream call.
"""
import asyncio
from typing import Awaitable, TypeVar

from .exceptions import EvaluationCancelled

T = TypeVar("T")


class CancellationSignal:
    """Idempotent cancel flag that in-flight upstream calls can race against."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Safe to call repeatedly or after completion."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise EvaluationCancelled()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless cancellation arrives first.

        On cancel the pending call is abandoned and EvaluationCancelled is raised.
        A call that already finished keeps its result.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise EvaluationCancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise EvaluationCancelled()
