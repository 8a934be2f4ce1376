"""
E-mail/SMS delivery over a generic HTTP provider endpoint.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from core.config import MessagingSettings
from core.logging_config import get_logger
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)


class MessagingAPIClient(BaseAPIClient):

    def __init__(self, config: MessagingSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=0.5,
            auth_token=config.api_key,
            transport=transport,
        )
        self._config = config

    async def send_email(self, to: str, subject: str, body: str, *, metadata: Optional[dict[str, Any]] = None) -> bool:
        """False when no e-mail endpoint is configured"""
        if not self._config.email_endpoint:
            logger.info("email_skipped_no_endpoint", to=to, subject=subject)
            return False
        await self.post(
            self._config.email_endpoint,
            json={
                "from": self._config.sender_email,
                "to": to,
                "subject": subject,
                "text": body,
                "metadata": metadata or {},
            },
        )
        logger.info("email_sent", to=to, subject=subject)
        return True

    async def send_sms(self, to: str, body: str, *, metadata: Optional[dict[str, Any]] = None) -> bool:
        if not self._config.sms_endpoint:
            logger.info("sms_skipped_no_endpoint", to=to)
            return False
        await self.post(self._config.sms_endpoint, json={"to": to, "body": body, "metadata": metadata or {}})
        logger.info("sms_sent", to=to)
        return True


__all__ = ["MessagingAPIClient", "APIError"]
