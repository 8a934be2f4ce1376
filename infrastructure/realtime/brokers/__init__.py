"""Realtime brokers (in-memory, Redis)."""

from .inmemory import InMemoryRealtimeBroker
from .redis import RedisRealtimeBroker

__all__ = [
    "InMemoryRealtimeBroker",
    "RedisRealtimeBroker",
]
