"""
Token service - signs and verifies JWT access tokens
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

import jwt

from domain.common.exceptions import AuthenticationException
from domain.user.entity import User, UserRole
from shared.codes import BusinessCode
from core.logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: UserRole
    jti: str


class TokenService:
    """
    Stateless access tokens.

    Claims: ``sub`` (user id), ``role``, ``type="access"``, ``jti``, ``exp``.
    """

    def __init__(self, secret_key: str, *, algorithm: str = "HS256", expire_minutes: int = 30):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire = timedelta(minutes=expire_minutes)

    def create_access_token(self, user: User, *, expires_in: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_in if expires_in is not None else self._expire)
        to_encode = {
            "sub": str(user.id),
            "role": user.role.value,
            "exp": expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify_access_token(self, token: Optional[str]) -> TokenClaims:
        """Decode an access token; raises AuthenticationException when missing, invalid or expired."""
        if not token:
            raise AuthenticationException("Missing access token")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationException("Access token expired", code=BusinessCode.TOKEN_EXPIRED) from None
        except jwt.InvalidTokenError as exc:
            logger.info("access_token_rejected", error=str(exc))
            raise AuthenticationException("Invalid access token", code=BusinessCode.TOKEN_INVALID) from None

        if payload.get("type") != "access":
            raise AuthenticationException("Invalid token type", code=BusinessCode.TOKEN_INVALID)
        try:
            user_id = int(payload["sub"])
            role = UserRole(payload.get("role", UserRole.USER.value))
        except (KeyError, TypeError, ValueError):
            raise AuthenticationException("Malformed token claims", code=BusinessCode.TOKEN_INVALID) from None
        return TokenClaims(user_id=user_id, role=role, jti=str(payload.get("jti", "")))
