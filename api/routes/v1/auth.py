"""
api/routes/v1/auth.py -- Registration, login and password-reset endpoints.

Routes:
  POST  /api/v1/register                     -- create a USER (optional referral code)
  POST  /api/v1/register/organizer           -- create an ORGANIZER
  POST  /api/v1/login                        -- USER login by username or email
  POST  /api/v1/organizer/login              -- ORGANIZER login by username or email
  POST  /api/v1/forgot-password              -- email a USER reset link
  POST  /api/v1/organizer/forgot-password    -- email an ORGANIZER reset link
  PATCH /api/v1/reset-password               -- exchange a USER reset token
  PATCH /api/v1/organizer/reset-password     -- exchange an ORGANIZER reset token

All routes are public. Business failures are raised by AuthService as
ApiError and rendered by the handler in api/main.py.

Security:
  Login and registration are rate-limited per IP (LOGIN_RATE_LIMIT,
  REGISTER_RATE_LIMIT).
  Cache-Control: no-store on login responses.
  The raw reset token is echoed only when EXPOSE_RESET_TOKEN=true.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, register_limit
from api.models import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OrganizerRegisterRequest,
    OrganizerResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.models import ORGANIZER_ROLE, USER_ROLE
from auth.service import AuthService

router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@limiter.limit(register_limit)
@router.post("/register", response_model=UserResponse, status_code=201)
def register_user(request: Request, body: RegisterRequest) -> UserResponse:
    """Register a user. A valid referral code credits the referrer and earns the new user a voucher."""
    user = _service(request).register_user(
        username=body.username,
        email=body.email,
        password=body.password,
        referral_code=body.referral_code,
    )
    return UserResponse.from_user(user)


@limiter.limit(register_limit)
@router.post("/register/organizer", response_model=OrganizerResponse, status_code=201)
def register_organizer(request: Request, body: OrganizerRegisterRequest) -> OrganizerResponse:
    organizer = _service(request).register_organizer(
        username=body.username,
        email=body.email,
        password=body.password,
        organization_name=body.organization_name,
    )
    return OrganizerResponse.from_organizer(organizer)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def _login(request: Request, role: str, body: LoginRequest) -> JSONResponse:
    service = _service(request)
    account, token = service.login(role, body.username_or_email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=service.settings.token_expire_seconds,
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_limit)
@router.post("/login", response_model=LoginResponse)
def login_user(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate a user by username or email and return a bearer token."""
    return _login(request, USER_ROLE, body)


@limiter.limit(login_limit)
@router.post("/organizer/login", response_model=LoginResponse)
def login_organizer(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate an organizer by username or email and return a bearer token."""
    return _login(request, ORGANIZER_ROLE, body)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def _forgot_password(request: Request, role: str, body: ForgotPasswordRequest) -> ForgotPasswordResponse:
    service = _service(request)
    ticket = service.request_password_reset(role, body.email)
    if ticket.delivered:
        message = "Password reset link sent to your email."
    else:
        message = "Password reset token issued; email delivery is disabled."
    return ForgotPasswordResponse(
        message=message,
        reset_token=ticket.token if service.settings.expose_reset_token else None,
    )


@limiter.limit(login_limit)
@router.post("/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password_user(request: Request, body: ForgotPasswordRequest) -> ForgotPasswordResponse:
    return _forgot_password(request, USER_ROLE, body)


@limiter.limit(login_limit)
@router.post("/organizer/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password_organizer(request: Request, body: ForgotPasswordRequest) -> ForgotPasswordResponse:
    return _forgot_password(request, ORGANIZER_ROLE, body)


@router.patch("/reset-password", response_model=MessageResponse)
def reset_password_user(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password using the token from the reset email."""
    _service(request).complete_password_reset(USER_ROLE, body.token, body.new_password)
    return MessageResponse(message="Password has been reset.")


@router.patch("/organizer/reset-password", response_model=MessageResponse)
def reset_password_organizer(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    _service(request).complete_password_reset(ORGANIZER_ROLE, body.token, body.new_password)
    return MessageResponse(message="Password has been reset.")
