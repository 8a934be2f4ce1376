"""E-mail and SMS delivery tasks"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from celery import shared_task

from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.api_clients import MessagingAPIClient
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


async def deliver_email(to: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None, **client_kwargs) -> bool:
    async with MessagingAPIClient(settings.messaging, **client_kwargs) as client:
        return await client.send_email(to, subject, body, metadata=metadata)


async def deliver_sms(to: str, body: str, metadata: Optional[Dict[str, Any]] = None, **client_kwargs) -> bool:
    async with MessagingAPIClient(settings.messaging, **client_kwargs) as client:
        return await client.send_sms(to, body, metadata=metadata)


@shared_task(
    name="messaging.send_email",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_email(self, to: str, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
    logger.info("send_email", to=to, subject=subject, attempt=self.request.retries)
    return asyncio.run(deliver_email(to, subject, body, metadata))


@shared_task(
    name="messaging.send_sms",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_sms(self, to: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
    logger.info("send_sms", to=to, attempt=self.request.retries)
    return asyncio.run(deliver_sms(to, body, metadata))
