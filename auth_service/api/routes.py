"""HTTP route definitions for the auth service."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request, status
from prometheus_client import Counter
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ..domain.account import AccountSummary, PublicAccount
from ..domain.contracts import LoginInput, RegisterInput
from ..domain.errors import AuthServiceError, ValidationError
from ..domain.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

AUTH_REQUESTS = Counter(
    "auth_requests_total",
    "Register and login requests by outcome.",
    ["operation", "outcome"],
)


class UserResponse(BaseModel):
    """Public representation of an account; never carries password material."""

    id: str
    username: str
    email: str

    @classmethod
    def from_domain(cls, account: PublicAccount) -> "UserResponse":
        """Build a response model from the domain view."""
        return cls(id=account.account_id, username=account.username, email=account.email)


class UserSummaryResponse(BaseModel):
    id: str
    username: str
    email: str
    created_at: datetime

    @classmethod
    def from_domain(cls, summary: AccountSummary) -> "UserSummaryResponse":
        return cls(
            id=summary.account_id,
            username=summary.username,
            email=summary.email,
            created_at=summary.created_at,
        )


class RegisterRequest(BaseModel):
    """Payload accepted by the registration endpoint.

    Fields are optional here so that absent values reach the service and are
    reported as ``missing_fields`` instead of a schema error.
    """

    username: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str = "User registered successfully"
    user: UserResponse


class LoginResponse(BaseModel):
    """Login response containing the bearer token and the public account view."""

    success: bool = True
    message: str = "Login successful"
    token: str
    user: UserResponse


class UserListResponse(BaseModel):
    success: bool = True
    count: int
    users: list[UserSummaryResponse]


class HealthResponse(BaseModel):
    status: str = "OK"
    message: str = "Server is running"


_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

RequestModel = TypeVar("RequestModel", RegisterRequest, LoginRequest)


async def _read_fields(request: Request) -> dict[str, Any]:
    """Return the submitted fields from a JSON or form-encoded body.

    An absent body yields no fields so the service reports ``missing_fields``;
    a body that is present but not a JSON object is ``invalid_request``.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in _FORM_CONTENT_TYPES:
        form = await request.form()
        return dict(form)

    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("invalid_request") from exc
    if not isinstance(data, dict):
        raise ValidationError("invalid_request")
    return data


def _parse(model: type[RequestModel], fields: dict[str, Any]) -> RequestModel:
    try:
        return model.model_validate(fields)
    except SchemaError as exc:
        logger.info("rejected malformed body: %s", exc.errors())
        raise ValidationError("invalid_request") from exc


async def register_payload(request: Request) -> RegisterRequest:
    return _parse(RegisterRequest, await _read_fields(request))


async def login_payload(request: Request) -> LoginRequest:
    return _parse(LoginRequest, await _read_fields(request))


def get_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Return a minimal liveness indicator."""
    return HealthResponse()


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest = Depends(register_payload),
    service: AuthService = Depends(get_service),
) -> RegisterResponse:
    """Create an account and return its public view."""
    try:
        account = service.register(
            RegisterInput(
                username=payload.username,
                email=payload.email,
                password=payload.password,
            )
        )
    except AuthServiceError as exc:
        AUTH_REQUESTS.labels(operation="register", outcome=exc.code).inc()
        raise
    AUTH_REQUESTS.labels(operation="register", outcome="success").inc()
    return RegisterResponse(user=UserResponse.from_domain(account))


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest = Depends(login_payload),
    service: AuthService = Depends(get_service),
) -> LoginResponse:
    """Verify credentials and issue a bearer token."""
    try:
        result = service.login(LoginInput(email=payload.email, password=payload.password))
    except AuthServiceError as exc:
        AUTH_REQUESTS.labels(operation="login", outcome=exc.code).inc()
        raise
    AUTH_REQUESTS.labels(operation="login", outcome="success").inc()
    return LoginResponse(token=result.token, user=UserResponse.from_domain(result.account))


@router.get("/users", response_model=UserListResponse)
def list_users(service: AuthService = Depends(get_service)) -> UserListResponse:
    """Return every account without password fields (diagnostic endpoint)."""
    listing = service.list_accounts()
    return UserListResponse(
        count=listing.count,
        users=[UserSummaryResponse.from_domain(summary) for summary in listing.accounts],
    )
