"""
Base processor client: retry, logging and event/status mapping shared by
the concrete adapters.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from shared.codes.payment_codes import PROVIDER_EVENT_TO_INTERNAL, PROVIDER_PAYOUT_STATUS_TO_INTERNAL


logger = get_logger(__name__)

T = TypeVar("T")


class BaseProcessorClient:
    provider: str = "base"
    # exception types worth another attempt (network blips, rate limits)
    transient_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, *, retry: Optional[dict[str, Any]] = None) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        if not self.transient_errors:
            return await fn()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(self.transient_errors),
            reraise=True,
        ):
            with attempt:
                return await fn()
        raise AssertionError("unreachable")

    def _map_event(self, provider_type: str) -> str:
        """Unknown provider events keep their own name and get ignored downstream"""
        return PROVIDER_EVENT_TO_INTERNAL.get(self.provider, {}).get(provider_type, provider_type)

    def _map_payout_status(self, provider_status: str) -> str:
        return PROVIDER_PAYOUT_STATUS_TO_INTERNAL.get(self.provider, {}).get(provider_status, "processing")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)
