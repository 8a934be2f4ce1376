"""Run an async job against a freshly built container."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from core.config import settings
from infrastructure.container import Container, build_container


T = TypeVar("T")


def run_with_container(job: Callable[[Container], Awaitable[T]]) -> T:
    """One event loop per task run; the worker owns no long-lived loop."""

    async def _run() -> T:
        container = await build_container(settings)
        try:
            return await job(container)
        finally:
            await container.aclose()

    return asyncio.run(_run())
