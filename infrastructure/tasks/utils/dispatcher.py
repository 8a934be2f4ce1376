"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from core.logging_config import get_logger
from ..config.celery import celery_app


logger = get_logger(__name__)


class TaskDispatcher:
    """Outbound messenger backed by the Celery queue.

    Services only see ``enqueue_email`` / ``enqueue_sms``; the worker does the
    HTTP delivery and its retries.
    """

    def enqueue_email(
        self, to: str, subject: str, body: str, *, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        return self.enqueue(
            "messaging.send_email",
            kwargs={"to": to, "subject": subject, "body": body, "metadata": metadata or {}},
        )

    def enqueue_sms(self, to: str, body: str, *, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        return self.enqueue("messaging.send_sms", kwargs={"to": to, "body": body, "metadata": metadata or {}})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> Optional[str]:
        """Schedule a task by name; returns the task id."""
        result = celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
        logger.debug("task_enqueued", task=task_name, task_id=result.id)
        return result.id
