"""Cancellable delayed tasks for the capture scheduler."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from log_config.logger import get_logger

logger = get_logger(__name__)


class CancellableTask:
    """Handle for one delayed callback. A cancelled task never runs."""

    def __init__(self, callback: Callable[[], None], delay_s: float, name: str = "task") -> None:
        self._callback = callback
        self.delay_s = delay_s
        self.name = name
        self._lock = threading.Lock()
        self._cancelled = False
        self._started = False
        self._timer: Optional[threading.Timer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def started(self) -> bool:
        return self._started

    @property
    def pending(self) -> bool:
        return not self._cancelled and not self._started

    def cancel(self) -> bool:
        """Revoke the task; returns False if it already started running."""
        with self._lock:
            if self._started:
                return False
            self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        return True

    def run(self) -> None:
        with self._lock:
            if self._cancelled or self._started:
                return
            self._started = True
        self._callback()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "started" if self._started else "pending"
        return f"CancellableTask({self.name}, delay={self.delay_s:.3f}s, {state})"


class TaskRunner(ABC):
    @abstractmethod
    def call_later(self, delay_s: float, callback: Callable[[], None], name: str = "task") -> CancellableTask:
        """Schedule ``callback`` after ``delay_s`` seconds."""

    def shutdown(self) -> None:
        """Cancel anything still pending."""


class ThreadingTaskRunner(TaskRunner):
    """Runs each task on its own ``threading.Timer`` daemon thread."""

    def __init__(self) -> None:
        self._tasks: List[CancellableTask] = []
        self._lock = threading.Lock()

    def call_later(self, delay_s: float, callback: Callable[[], None], name: str = "task") -> CancellableTask:
        task = CancellableTask(callback, delay_s, name=name)
        timer = threading.Timer(max(delay_s, 0.0), self._run_task, args=(task,))
        timer.daemon = True
        timer.name = f"qrscanner-{name}"
        task._timer = timer
        with self._lock:
            self._tasks = [t for t in self._tasks if t.pending]
            self._tasks.append(task)
        timer.start()
        return task

    def _run_task(self, task: CancellableTask) -> None:
        try:
            task.run()
        except Exception:
            logger.exception(f"Unhandled error in scheduled {task.name}")

    def shutdown(self) -> None:
        with self._lock:
            tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()


class ManualTaskRunner(TaskRunner):
    """Deterministic runner driven by ``advance()``/``run_next()``.

    Used by tests and by the simulated demo loop; nothing runs until asked.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: List[tuple] = []
        self._seq = 0

    @property
    def now(self) -> float:
        return self._now

    def call_later(self, delay_s: float, callback: Callable[[], None], name: str = "task") -> CancellableTask:
        task = CancellableTask(callback, delay_s, name=name)
        self._seq += 1
        self._queue.append((self._now + max(delay_s, 0.0), self._seq, task))
        self._queue.sort(key=lambda item: (item[0], item[1]))
        return task

    @property
    def pending(self) -> List[CancellableTask]:
        return [task for _, _, task in self._queue if task.pending]

    def run_next(self) -> bool:
        """Run the earliest pending task, advancing the clock to it."""
        while self._queue:
            due, _, task = self._queue.pop(0)
            if not task.pending:
                continue
            self._now = max(self._now, due)
            task.run()
            return True
        return False

    def advance(self, seconds: float) -> int:
        """Advance the clock, running every task that falls due."""
        deadline = self._now + seconds
        ran = 0
        while self._queue:
            due, _, task = self._queue[0]
            if due > deadline:
                break
            self._queue.pop(0)
            if task.pending:
                self._now = max(self._now, due)
                task.run()
                ran += 1
        self._now = deadline
        return ran

    def run_until_idle(self, max_steps: int = 1000) -> int:
        steps = 0
        while steps < max_steps and self.run_next():
            steps += 1
        return steps

    def shutdown(self) -> None:
        for _, _, task in self._queue:
            task.cancel()
        self._queue.clear()
