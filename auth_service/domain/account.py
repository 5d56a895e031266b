from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class Account:
    """Stored credential record keyed by email."""

    account_id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime

    def summary(self) -> "AccountSummary":
        """Return the enumeration view with the password hash stripped."""
        return AccountSummary(
            account_id=self.account_id,
            username=self.username,
            email=self.email,
            created_at=self.created_at,
        )

    def public(self) -> "PublicAccount":
        """Return the view handed back to clients after register/login."""
        return PublicAccount(
            account_id=self.account_id,
            username=self.username,
            email=self.email,
        )


@dataclass(slots=True, frozen=True)
class AccountSummary:
    """Diagnostic projection of an account without sensitive fields."""

    account_id: str
    username: str
    email: str
    created_at: datetime


@dataclass(slots=True, frozen=True)
class PublicAccount:
    account_id: str
    username: str
    email: str
