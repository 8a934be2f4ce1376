"""
Fernet cipher for chat content at rest.
"""
from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from core.logging_config import get_logger
from domain.common.exceptions import InternalException


logger = get_logger(__name__)


class FernetMessageCipher:

    def __init__(self, key: str | bytes) -> None:
        self._fernet = Fernet(key)

    @classmethod
    def from_settings(cls, encryption_key: Optional[str], secret_key: str) -> "FernetMessageCipher":
        """Use the configured key, or derive one from the signing secret"""
        if encryption_key:
            return cls(encryption_key)
        derived = base64.urlsafe_b64encode(hashlib.sha256(f"chat:{secret_key}".encode()).digest())
        return cls(derived)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.error("message_decrypt_failed")
            raise InternalException("Stored message could not be decrypted") from None
