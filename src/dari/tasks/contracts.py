"""Task contracts v1 - worker task bodies without PII.

Every task POSTed to the worker is a TaskEnvelopeV1 serialized to JSON. The
worker rejects unknown versions and task names it does not handle.
"""

from dataclasses import dataclass, field
from typing import Any, Literal


class InvalidTaskError(ValueError):
    """Task body is not a valid v1 envelope for the expected task."""


@dataclass(frozen=True)
class TaskEnvelopeV1:
    """Task envelope v1.

    Attributes:
        version: Contract version (always "v1").
        task_name: Dotted task type, e.g. "settlements.settle".
        payload: Task-specific ids (must not contain PII).
        task_id: Unique identifier for idempotency.
    """

    version: Literal["v1"] = field(default="v1", init=False)
    task_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    task_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "task_name": self.task_name,
            "payload": self.payload,
            "task_id": self.task_id,
        }

    @classmethod
    def from_dict(cls, data: Any, *, expected_task: str | None = None) -> "TaskEnvelopeV1":
        """Parse and validate an envelope.

        Raises:
            InvalidTaskError: Wrong shape, version or task name.
        """
        if not isinstance(data, dict):
            raise InvalidTaskError("task body must be a JSON object")
        if data.get("version") != "v1":
            raise InvalidTaskError(f"Unsupported version: {data.get('version')}")
        task_name = data.get("task_name", "")
        if expected_task is not None and task_name != expected_task:
            raise InvalidTaskError(f"Unexpected task: {task_name!r}")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise InvalidTaskError("payload must be a JSON object")
        return cls(
            task_name=task_name,
            payload=payload,
            task_id=data.get("task_id", ""),
        )
