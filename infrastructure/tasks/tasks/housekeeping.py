"""Expiry sweeps for chat messages and notifications"""
from __future__ import annotations

from celery import shared_task

from infrastructure.container import Container
from ..utils.base_task import BaseTask
from .runner import run_with_container


async def purge_messages_job(container: Container) -> int:
    return await container.chats.purge_expired_messages()


async def purge_notifications_job(container: Container) -> int:
    return await container.notifications.purge_expired()


@shared_task(name="housekeeping.purge_expired_messages", bind=True, base=BaseTask)
def purge_expired_messages(self) -> int:
    return run_with_container(purge_messages_job)


@shared_task(name="housekeeping.purge_expired_notifications", bind=True, base=BaseTask)
def purge_expired_notifications(self) -> int:
    return run_with_container(purge_notifications_job)
