"""Capture-to-decode scanner."""

from app.scanner.scheduler import CaptureScheduler
from app.scanner.task_timer import CancellableTask, ManualTaskRunner, TaskRunner, ThreadingTaskRunner

__all__ = [
    "CancellableTask",
    "CaptureScheduler",
    "ManualTaskRunner",
    "TaskRunner",
    "ThreadingTaskRunner",
]
