"""
Out-of-band channels (e-mail/SMS).

The dispatcher only enqueues; delivery happens in background tasks.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol


class OutboundMessenger(Protocol):

    def enqueue_email(self, to: str, subject: str, body: str, *, metadata: Optional[dict[str, Any]] = None) -> Optional[str]: ...

    def enqueue_sms(self, to: str, body: str, *, metadata: Optional[dict[str, Any]] = None) -> Optional[str]: ...


__all__ = ["OutboundMessenger"]
