"""Tasks client with idempotent enqueue.

Backends, selected via the TASKS_BACKEND env var:
- inline (default): records tasks without sending them (dev/tests)
- http: POSTs tasks straight to the worker
- cloud_tasks: creates Google Cloud Tasks, honouring schedule_time
"""

import os
from datetime import datetime


class TasksClient:
    """Tasks client with idempotent enqueue by task_id.

    Remembers task_ids it has accepted: the same task_id is a no-op for the
    lifetime of the client. Cloud Tasks additionally dedupes by task name.
    """

    def __init__(self, backend: str | None = None) -> None:
        self._seen_ids: set[str] = set()
        self._recorded_tasks: list[dict] = []
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")

    @property
    def backend(self) -> str:
        return self._backend

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Enqueue a task for the worker endpoint at url_path.

        Args:
            task_id: Unique identifier for idempotency.
            url_path: Worker endpoint path (e.g., "/tasks/settlements/settle").
            payload: Task data (must not contain PII).
            correlation_id: Optional correlation ID for tracing.
            schedule_time: Optional future execution time.

        Returns:
            True if the task was accepted (new task_id), False if already seen
            or the backend failed to deliver it.

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        if task_id in self._seen_ids:
            return False

        if self._backend == "inline":
            self._seen_ids.add(task_id)
            self._recorded_tasks.append({
                "task_id": task_id,
                "url_path": url_path,
                "payload": payload,
                "correlation_id": correlation_id,
                "schedule_time": schedule_time,
            })
            return True

        if self._backend == "http":
            from dari.tasks.http_backend import enqueue_http
            accepted = enqueue_http(task_id, url_path, payload, correlation_id, schedule_time)
        elif self._backend == "cloud_tasks":
            from dari.tasks.cloud_tasks_backend import enqueue_cloud_task
            accepted = enqueue_cloud_task(task_id, url_path, payload, correlation_id, schedule_time)
        else:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

        if accepted:
            self._seen_ids.add(task_id)
        return accepted

    def was_enqueued(self, task_id: str) -> bool:
        return task_id in self._seen_ids

    def get_recorded_tasks(self) -> list[dict]:
        """Tasks recorded by the inline backend (useful for testing)."""
        return list(self._recorded_tasks)

    def clear(self) -> None:
        self._seen_ids.clear()
        self._recorded_tasks.clear()


_default_client: TasksClient | None = None


def get_tasks_client() -> TasksClient:
    """Process-wide client (routes override this dependency in tests)."""
    global _default_client
    if _default_client is None:
        _default_client = TasksClient()
    return _default_client
