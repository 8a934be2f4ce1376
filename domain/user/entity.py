"""
User entity - the marketplace party the escrow and chat core talks to
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass
from enum import Enum
import re

from domain.common.clock import ensure_utc
from domain.common.exceptions import DomainValidationException


class UserRole(str, Enum):
    USER = "user"
    ARTISAN = "artisan"
    ADMIN = "admin"


@dataclass
class User:
    """User entity (customer, artisan or admin)"""

    id: Optional[int]
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.USER
    payout_account_id: Optional[str] = None
    customer_account_id: Optional[str] = None
    notify_email: bool = True
    notify_sms: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.role, str):
            self.role = UserRole(self.role)
        self.validate_email()
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def validate_email(self) -> None:
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, self.email):
            raise DomainValidationException(f"Invalid email: {self.email}", field="email")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_artisan(self) -> bool:
        return self.role == UserRole.ARTISAN
