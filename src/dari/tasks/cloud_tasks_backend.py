"""Cloud Tasks backend for GCP deployment.

The only backend that honours schedule_time, which is how the per-booking
settle task fires at settlement_due_at.
"""
import json
import os
from datetime import datetime

from google.api_core import exceptions as gcp_exceptions
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)


def task_name_for(task_id: str) -> str:
    """Cloud Tasks names allow [A-Za-z0-9_-] only."""
    return task_id.replace(":", "-").replace("/", "-").replace(".", "-")


def enqueue_cloud_task(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Create a Cloud Task that POSTs payload to the worker.

    Returns:
        True if created, or if a task with the same name already exists.

    Raises:
        RuntimeError: If required env vars are not set.
        google.api_core.exceptions.GoogleAPIError: On any other API failure.
    """
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")
    location = os.environ.get("GCP_LOCATION", "europe-west1")
    queue = os.environ.get("GCP_TASKS_QUEUE", "dari-bookings")
    worker_url = os.environ.get("WORKER_BASE_URL")
    oidc_service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    # Must equal what the worker verifies in task_auth.verify_task_oidc
    oidc_audience = os.environ.get("TASKS_OIDC_AUDIENCE")

    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
    if not worker_url:
        raise RuntimeError("WORKER_BASE_URL required for Cloud Tasks")
    if not oidc_service_account:
        raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")
    if not oidc_audience:
        raise RuntimeError("TASKS_OIDC_AUDIENCE required for Cloud Tasks")

    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(project, location, queue)

    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    task = {
        "name": f"{parent}/tasks/{task_name_for(task_id)}",
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{worker_url.rstrip('/')}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": oidc_service_account,
                "audience": oidc_audience,
            },
        },
    }

    if schedule_time is not None:
        timestamp = timestamp_pb2.Timestamp()
        timestamp.FromDatetime(schedule_time)
        task["schedule_time"] = timestamp

    try:
        response = client.create_task(parent=parent, task=task)
    except gcp_exceptions.AlreadyExists:
        logger.info(
            "cloud task already exists (dedupe)",
            extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
        )
        return True
    except gcp_exceptions.GoogleAPIError as e:
        logger.exception(
            "failed to enqueue cloud task",
            extra={"extra_fields": safe_log_context(task_id=task_id, error=str(e))},
        )
        raise

    logger.info(
        "cloud task enqueued",
        extra={
            "extra_fields": safe_log_context(
                task_name=response.name,
                url_path=url_path,
                scheduled=schedule_time is not None,
            )
        },
    )
    return True
