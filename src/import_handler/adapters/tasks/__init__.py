"""Task queue adapters."""

from import_handler.adapters.tasks.cloud_tasks_queue import CloudTasksQueue, DirectHttpQueue

__all__ = ["CloudTasksQueue", "DirectHttpQueue"]
