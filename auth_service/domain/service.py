"""Auth service orchestrating validation, hashing, persistence, and token issuance."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone

from .account import Account, PublicAccount
from .contracts import AccountListing, LoginInput, LoginResult, RegisterInput
from .errors import AuthError, ConflictError, InternalError, ValidationError
from ..config import Settings, get_settings
from ..repository import AccountRepository, DuplicateEmailError, StoreError
from ..security.passwords import (
    burn_verification,
    exceeds_bcrypt_limit,
    hash_password,
    verify_password,
)
from ..security.tokens import issue_access_token

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email) is not None


class AuthService:
    """Registration and login workflows over an injected credential store."""

    def __init__(self, repository: AccountRepository, settings: Settings | None = None) -> None:
        """Store dependencies used to orchestrate persistence and token issuance."""
        self._repository = repository
        self._settings = settings or get_settings()

    def register(self, payload: RegisterInput) -> PublicAccount:
        """Validate, hash, and persist a new account.

        Checks run in a fixed order so a request failing several rules always
        reports the same error: missing fields, username length, password
        length, email shape, then email uniqueness.
        """
        if _blank(payload.username) or _blank(payload.email) or _blank(payload.password):
            raise ValidationError("missing_fields")
        username, email, password = payload.username, payload.email, payload.password

        if len(username) < MIN_USERNAME_LENGTH:
            raise ValidationError("username_too_short")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("password_too_short")
        if exceeds_bcrypt_limit(password):
            raise ValidationError("password_too_long")
        if not is_valid_email(email):
            raise ValidationError("invalid_email")

        logger.info("registration attempt for %s", email)
        try:
            if self._repository.exists(email):
                raise ConflictError("email_taken")

            account = Account(
                account_id=str(uuid.uuid4()),
                username=username,
                email=email,
                password_hash=hash_password(password, self._settings.bcrypt_rounds),
                created_at=datetime.now(timezone.utc),
            )
            self._repository.insert(account)
        except DuplicateEmailError as exc:
            # Another request registered the same email between exists() and insert().
            logger.info("registration for %s lost uniqueness race", email)
            raise ConflictError("email_taken") from exc
        except StoreError as exc:
            logger.exception("registration failed for %s", email)
            raise InternalError() from exc

        logger.info("account %s registered for %s", account.account_id, email)
        return account.public()

    def login(self, payload: LoginInput) -> LoginResult:
        """Verify credentials and issue a bearer token.

        An unknown email and a wrong password raise the same ``AuthError``;
        the unknown-email path still pays for one bcrypt comparison.
        """
        if _blank(payload.email) or _blank(payload.password):
            raise ValidationError("missing_fields", "Email and password are required")
        email, password = payload.email, payload.password

        logger.info("login attempt for %s", email)
        try:
            account = self._repository.find_by_email(email)
        except StoreError as exc:
            logger.exception("login lookup failed for %s", email)
            raise InternalError() from exc

        if account is None:
            burn_verification(password, self._settings.bcrypt_rounds)
            raise AuthError()
        if not verify_password(password, account.password_hash):
            raise AuthError()

        token, _ = issue_access_token(subject=account.account_id, settings=self._settings)
        logger.info("account %s logged in", account.account_id)
        return LoginResult(token=token, account=account.public())

    def list_accounts(self) -> AccountListing:
        """Return every stored account without password hashes (diagnostic use)."""
        try:
            accounts = self._repository.list_all()
            total = self._repository.count()
        except StoreError as exc:
            logger.exception("account enumeration failed")
            raise InternalError() from exc
        return AccountListing(count=total, accounts=accounts)
