"""
REST API client base

Shared HTTP plumbing for outbound integrations:
- retry on timeouts, network errors and 429/5xx
- structured request/response logging
- bearer authentication
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class APIResponse:
    status_code: int
    headers: Dict[str, str]
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class APIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, request_id: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)


class RetryableAPIError(APIError):
    pass


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.default_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if headers:
            self.default_headers.update(headers)
        if auth_token:
            self.default_headers["Authorization"] = f"Bearer {auth_token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")) or not self.base_url:
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _send_once(self, method: str, url: str, **kwargs) -> APIResponse:
        start = datetime.now()
        response = await self._get_client().request(method, url, headers=self.default_headers, **kwargs)
        elapsed = (datetime.now() - start).total_seconds() * 1000

        data = None
        if "application/json" in response.headers.get("content-type", ""):
            try:
                data = response.json()
            except json.JSONDecodeError:
                data = None

        api_response = APIResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=data,
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-request-id"),
        )
        logger.debug("api_response", method=method, url=url, status_code=response.status_code, elapsed_ms=round(elapsed, 1))

        if api_response.status_code in RETRY_STATUS_CODES:
            retry_after = api_response.headers.get("retry-after")
            if api_response.status_code == 429 and retry_after and retry_after.isdigit():
                await asyncio.sleep(float(retry_after))
            raise RetryableAPIError(
                f"Transient API error with status {api_response.status_code}",
                status_code=api_response.status_code,
                request_id=api_response.request_id,
            )
        if api_response.is_error:
            message = f"API request failed with status {api_response.status_code}"
            if isinstance(data, dict):
                message = data.get("message") or data.get("error") or data.get("detail") or message
            raise APIError(str(message), status_code=api_response.status_code, request_id=api_response.request_id)
        return api_response

    async def _request(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        url = self._build_url(endpoint)
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, min=self.retry_delay, max=self.retry_delay * 8),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._send_once(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.NetworkError as exc:
            raise APIError(f"Network error: {exc}") from exc
        raise AssertionError("unreachable")

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("POST", endpoint, **kwargs)

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request("GET", endpoint, **kwargs)
