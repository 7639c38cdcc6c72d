"""
Per-key coalescing of concurrent fetches.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Generic, Tuple, TypeVar


T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Registry of in-flight operations keyed by string.

    The first caller for a key starts the operation as its own task; callers
    arriving while it runs await the same task. Waiters are shielded, so a
    cancelled waiter (client disconnect) never cancels the shared task. The
    entry is removed as soon as the task settles.
    """

    def __init__(self):
        self._inflight: Dict[str, "asyncio.Task[T]"] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, operation: Callable[[], Awaitable[T]]) -> Tuple[T, bool]:
        """Run ``operation`` once per key; returns ``(result, shared)``.

        ``shared`` is True when this caller joined a task started by another.
        """
        task = self._inflight.get(key)
        shared = task is not None
        if task is None:
            task = asyncio.ensure_future(operation())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))

        result = await asyncio.shield(task)
        return result, shared

    def _release(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome as observed even if every waiter went away.
        if not task.cancelled():
            task.exception()
