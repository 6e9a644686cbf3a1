"""
auth/models.py -- Domain dataclasses for accounts and registration rewards.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work.

User and Organizer are two parallel record types, not a class hierarchy. Both
carry the same credential attributes (id, username, email, hashed_password,
role, reset_password_token, reset_password_expiry), which is all that the
login and password-reset workflows rely on. Account is the union alias used
in signatures that accept either.

Layer rule: no imports from api/, core/, or events/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

USER_ROLE = "USER"
ORGANIZER_ROLE = "ORGANIZER"
ROLES = (USER_ROLE, ORGANIZER_ROLE)

POINT_EARN = "EARN"


@dataclass
class User:
    """A ticket buyer.

    referral_code is generated at registration and handed to friends;
    referred_by_id points at the user whose code was used, if any.

    reset_password_token / reset_password_expiry are both None or both set.
    """

    username: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    role: str = USER_ROLE
    first_name: str | None = None
    last_name: str | None = None
    address: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None
    referral_code: str | None = None
    referred_by_id: int | None = None
    reset_password_token: str | None = None
    reset_password_expiry: str | None = None  # ISO 8601
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Organizer:
    """An event organizer. No referral program, otherwise mirrors User."""

    username: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    role: str = ORGANIZER_ROLE
    organization_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    address: str | None = None
    phone_number: str | None = None
    photo_url: str | None = None
    reset_password_token: str | None = None
    reset_password_expiry: str | None = None  # ISO 8601
    created_at: str | None = None
    updated_at: str | None = None


Account = Union[User, Organizer]


@dataclass
class Voucher:
    """A discount code issued to a newly referred user.

    id is None before the record is written to the database.
    """

    code: str
    user_id: int | None
    quota: int
    discount_amount: int
    valid_from: str  # ISO 8601
    valid_until: str  # ISO 8601
    is_active: bool = True
    id: int | None = None
    created_at: str | None = None


@dataclass
class PointEntry:
    """Append-only ledger row. Records are never updated or deleted."""

    user_id: int
    amount: int
    type: str = POINT_EARN
    id: int | None = None
    created_at: str | None = None


@dataclass
class Profile:
    """Read model for GET /profile: the account plus its reward balances and ledger."""

    account: Account
    points_balance: int = 0
    points: list[PointEntry] = field(default_factory=list)
    vouchers: list[Voucher] = field(default_factory=list)
