"""Task queue adapters for downstream fetch, save and email tasks."""

import base64
import json
import uuid
from typing import Optional

import httpx

from import_handler.core import TaskQueue, TaskQueueError


class CloudTasksQueue(TaskQueue):
    """Create HTTP tasks through the Cloud Tasks REST API."""

    def __init__(
        self,
        project_id: str,
        location: str,
        queue: str,
        access_token: Optional[str] = None,
        api_base_url: str = "https://cloudtasks.googleapis.com/v2",
        timeout: float = 30.0,
    ) -> None:
        self.project_id = project_id
        self.location = location
        self.queue = queue
        self.access_token = access_token
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout

    @property
    def queue_path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location}/queues/{self.queue}"

    @property
    def service_account_email(self) -> str:
        return f"{self.project_id}@appspot.gserviceaccount.com"

    def build_task(self, url: str, payload: dict, headers: Optional[dict[str, str]] = None) -> dict:
        """Build the task resource for an authenticated POST to ``url``."""
        body = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
        return {
            "httpRequest": {
                "httpMethod": "POST",
                "url": url,
                "headers": {"Content-Type": "application/json", **(headers or {})},
                "body": body,
                "oidcToken": {"serviceAccountEmail": self.service_account_email},
            }
        }

    async def enqueue(
        self, url: str, payload: dict, headers: Optional[dict[str, str]] = None
    ) -> Optional[str]:
        """Create a task and return its resource name.

        Raises:
            TaskQueueError: if the queue is not configured or the API call fails.
        """
        if not self.project_id or not self.location or not self.queue or not url:
            raise TaskQueueError(
                f"Environment not configured: project={self.project_id!r}, "
                f"location={self.location!r}, queue={self.queue!r}, url={url!r}"
            )

        request_headers = {}
        if self.access_token:
            request_headers["Authorization"] = f"Bearer {self.access_token}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.api_base_url}/{self.queue_path}/tasks",
                    json={"task": self.build_task(url, payload, headers)},
                    headers=request_headers,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TaskQueueError(f"Could not create task for {url}: {e}") from e

        return response.json().get("name")


class DirectHttpQueue(TaskQueue):
    """Post task payloads straight to their handler (local development)."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    async def enqueue(
        self, url: str, payload: dict, headers: Optional[dict[str, str]] = None
    ) -> Optional[str]:
        if not url:
            raise TaskQueueError("Task handler URL is not configured")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(url, json=payload, headers=headers or {})
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TaskQueueError(f"Task handler {url} failed: {e}") from e

        return f"local-{uuid.uuid4()}"
