"""
API request and response models for TicketHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
events/models.py, which own the internal domain representation. The
from_* class methods map between the two.

Separation of concerns: auth/ and events/ models = domain truth; api/ models =
API contract. Password hashes and reset tokens never appear in a response
model (the one opt-in exception is ForgotPasswordResponse.reset_token).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Organizer, PointEntry, Profile, User, Voucher
from events.models import Event

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

# bcrypt truncates beyond 72 bytes
_PASSWORD_MAX = 72


def _strip(v):
    return v.strip() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/register.

    Identity fields are whitespace-stripped; password is taken verbatim so
    the same bytes are hashed here and verified at login.
    """

    username: str = Field(min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    referral_code: Optional[str] = Field(default=None, max_length=150)

    @field_validator("username", "email", "referral_code", mode="before")
    @classmethod
    def strip_identity(cls, v):
        return _strip(v)


class OrganizerRegisterRequest(BaseModel):
    """Request body for POST /api/v1/register/organizer. Password is not stripped."""

    username: str = Field(min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    organization_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("username", "email", "organization_name", mode="before")
    @classmethod
    def strip_identity(cls, v):
        return _strip(v)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/login and /api/v1/organizer/login.

    username_or_email is treated as an email when it contains "@".
    """

    username_or_email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/reset-password (token from the emailed link)."""

    token: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class ChangePasswordRequest(BaseModel):
    """Request body for PATCH /api/v1/profile/password (authenticated)."""

    new_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    referral_code: Optional[str]
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.role,
            referral_code=user.referral_code,
            created_at=user.created_at or "",
        )


class OrganizerResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    organization_name: Optional[str]
    created_at: str

    @classmethod
    def from_organizer(cls, organizer: Organizer) -> "OrganizerResponse":
        return cls(
            id=organizer.id,
            username=organizer.username,
            email=organizer.email,
            role=organizer.role,
            organization_name=organizer.organization_name,
            created_at=organizer.created_at or "",
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    id: int
    username: str
    email: str
    role: str


class ForgotPasswordResponse(BaseModel):
    """reset_token is populated only when EXPOSE_RESET_TOKEN is enabled."""

    model_config = ConfigDict(frozen=True)

    message: str
    reset_token: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class VoucherResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    quota: int
    discount_amount: int
    valid_from: str
    valid_until: str
    is_active: bool

    @classmethod
    def from_voucher(cls, voucher: Voucher) -> "VoucherResponse":
        return cls(
            code=voucher.code,
            quota=voucher.quota,
            discount_amount=voucher.discount_amount,
            valid_from=voucher.valid_from,
            valid_until=voucher.valid_until,
            is_active=voucher.is_active,
        )


class PointEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: int
    type: str
    created_at: str

    @classmethod
    def from_point(cls, entry: PointEntry) -> "PointEntryResponse":
        return cls(amount=entry.amount, type=entry.type, created_at=entry.created_at or "")


class ProfileResponse(BaseModel):
    """Profile of the authenticated account.

    Referral and reward fields are only meaningful for users; organizers get
    organization_name instead.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    first_name: Optional[str]
    last_name: Optional[str]
    address: Optional[str]
    phone_number: Optional[str]
    photo_url: Optional[str]
    created_at: str
    organization_name: Optional[str] = None
    referral_code: Optional[str] = None
    points_balance: int = 0
    points: list[PointEntryResponse] = Field(default_factory=list)
    vouchers: list[VoucherResponse] = Field(default_factory=list)

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        account = profile.account
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
            first_name=account.first_name,
            last_name=account.last_name,
            address=account.address,
            phone_number=account.phone_number,
            photo_url=account.photo_url,
            created_at=account.created_at or "",
            organization_name=getattr(account, "organization_name", None),
            referral_code=getattr(account, "referral_code", None),
            points_balance=profile.points_balance,
            points=[PointEntryResponse.from_point(p) for p in profile.points],
            vouchers=[VoucherResponse.from_voucher(v) for v in profile.vouchers],
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    organizer_id: int
    title: str
    slug: str
    description: str
    category: str
    location: str
    start_date: str
    end_date: str
    price: int
    available_seats: int
    image_url: Optional[str]
    created_at: str

    @classmethod
    def from_event(cls, ev: Event) -> "EventResponse":
        return cls(
            id=ev.id,
            organizer_id=ev.organizer_id,
            title=ev.title,
            slug=ev.slug,
            description=ev.description,
            category=ev.category,
            location=ev.location,
            start_date=ev.start_date,
            end_date=ev.end_date,
            price=ev.price,
            available_seats=ev.available_seats,
            image_url=ev.image_url,
            created_at=ev.created_at,
        )


class EventListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[EventResponse]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
