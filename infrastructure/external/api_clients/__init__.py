"""
Outbound REST API clients
"""
from .base import APIError, APIResponse, BaseAPIClient
from .messaging import MessagingAPIClient

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "MessagingAPIClient",
]
