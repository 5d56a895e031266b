"""Domain-level request and result contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from .account import AccountSummary, PublicAccount


@dataclass(slots=True)
class RegisterInput:
    """Untrusted registration fields exactly as submitted by the client."""

    username: str | None
    email: str | None
    password: str | None


@dataclass(slots=True)
class LoginInput:
    """Untrusted login fields exactly as submitted by the client."""

    email: str | None
    password: str | None


@dataclass(slots=True)
class LoginResult:
    """Bearer token issued on a successful login plus the public account view."""

    token: str
    account: PublicAccount


@dataclass(slots=True)
class AccountListing:
    count: int
    accounts: list[AccountSummary]
