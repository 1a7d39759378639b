from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable

_LOGGER = logging.getLogger("synesthesia.scheduler")


@dataclass(order=True, slots=True)
class ScheduledTask:
    """A deferred callback pinned to a point on the audio clock."""

    when: float
    sequence: int
    callback: Callable[[], None] = field(compare=False)
    label: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)
    done: bool = field(default=False, compare=False)

    def cancel(self) -> bool:
        """Cancel the task; returns False if it already ran."""
        if self.done:
            return False
        self.cancelled = True
        return True

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)


class TaskQueue:
    """Time-ordered queue of deferred tasks.

    Nothing here sleeps. Whoever owns the clock calls ``run_due(now)`` as time
    moves forward, which makes the queue fully deterministic under test.
    """

    def __init__(self) -> None:
        self._heap: list[ScheduledTask] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return sum(1 for task in self._heap if task.pending)

    def schedule(self, when: float, callback: Callable[[], None], *, label: str = "") -> ScheduledTask:
        task = ScheduledTask(when=when, sequence=next(self._counter), callback=callback, label=label)
        heapq.heappush(self._heap, task)
        return task

    def pending(self) -> tuple[ScheduledTask, ...]:
        return tuple(task for task in sorted(self._heap) if task.pending)

    def next_due(self) -> float | None:
        self._drop_cancelled()
        return self._heap[0].when if self._heap else None

    def run_due(self, now: float) -> int:
        """Run every pending task due at or before ``now``; returns how many ran."""
        ran = 0
        while self._heap and self._heap[0].when <= now:
            task = heapq.heappop(self._heap)
            if task.cancelled:
                continue
            task.done = True
            _LOGGER.debug("Running task %r due at %.4f (now=%.4f)", task.label, task.when, now)
            task.callback()
            ran += 1
        return ran

    def cancel_all(self) -> int:
        cancelled = 0
        for task in self._heap:
            if task.pending and task.cancel():
                cancelled += 1
        self._heap.clear()
        return cancelled

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
