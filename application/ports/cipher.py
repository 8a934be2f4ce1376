"""
Message encryption port (chat content at rest).
"""
from __future__ import annotations

from typing import Protocol


class MessageCipher(Protocol):

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, token: str) -> str: ...


__all__ = ["MessageCipher"]
