"""
auth/service.py -- Registration, login, password-reset and profile workflows.

AuthService is the only place where account business rules live:

  register_user()          uniqueness checks, referral validation, referral
                           bonus + welcome voucher, one atomic store write
  register_organizer()     uniqueness checks only
  login()                  username-or-email lookup, bcrypt verify, JWT
  request_password_reset() token + expiry, templated email
  complete_password_reset() token exchange for a new password
  get_profile() / update_profile() / change_password()

Every expected failure is raised as core.errors.ApiError. The store, mailer
and settings are passed in by the caller (api/main.py lifespan, or a test)
so the workflows can run against any database and any mail transport.

Layer rule: no imports from api/ or events/.
"""

from __future__ import annotations

import calendar
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.models import (
    ORGANIZER_ROLE,
    POINT_EARN,
    USER_ROLE,
    Account,
    Organizer,
    PointEntry,
    Profile,
    User,
    Voucher,
)
from auth.store import AccountStore
from auth.tokens import create_access_token, generate_reset_token, hash_password, verify_password
from core.config import Settings, get_settings
from core.errors import ApiError, ErrorCode
from core.mailer import Mailer, MailDeliveryError, render_template

logger = logging.getLogger("tickethub.auth")

# Referral rewards
REFERRAL_BONUS_POINTS = 10000
VOUCHER_DISCOUNT_AMOUNT = 10000
VOUCHER_QUOTA = 1
VOUCHER_VALID_MONTHS = 3

_REFERRAL_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
# Voucher codes avoid confusing characters: 0, O, I, l, 1
_VOUCHER_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
_MAX_CODE_ATTEMPTS = 10


def generate_referral_code(username: str) -> str:
    """Return ref_<username>_<4 random base36 chars>."""
    suffix = "".join(secrets.choice(_REFERRAL_SUFFIX_ALPHABET) for _ in range(4))
    return f"ref_{username}_{suffix}"


def generate_voucher_code(length: int = 8) -> str:
    return "VCR-" + "".join(secrets.choice(_VOUCHER_ALPHABET) for _ in range(length))


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a datetime by whole calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class PasswordResetTicket:
    """Outcome of a reset request. token is only shown to callers that opted in."""

    account: Account
    token: str
    expires_at: datetime
    delivered: bool


class AuthService:
    def __init__(self, store: AccountStore, mailer: Mailer, settings: Settings | None = None) -> None:
        self.store = store
        self.mailer = mailer
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_user(self, username: str, email: str, password: str, referral_code: str | None = None) -> User:
        """Create a USER account, crediting the referrer when a referral code is given.

        A referred signup appends one EARN ledger entry of
        REFERRAL_BONUS_POINTS for the referrer and issues the new user a
        single-use voucher valid for VOUCHER_VALID_MONTHS. Account, ledger
        entry and voucher are written in one transaction.
        """
        self._ensure_available(USER_ROLE, email, username)

        referrer: User | None = None
        if referral_code and referral_code.strip():
            referrer = self.store.get_user_by_referral_code(referral_code.strip())
            if referrer is None:
                raise ApiError(ErrorCode.invalid_referral, "Invalid referral code!")

        user = User(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            referral_code=self._unique_referral_code(username),
            referred_by_id=referrer.id if referrer else None,
        )
        bonus: PointEntry | None = None
        voucher: Voucher | None = None
        if referrer is not None:
            bonus = PointEntry(user_id=referrer.id, amount=REFERRAL_BONUS_POINTS, type=POINT_EARN)
            voucher = self._new_voucher()

        try:
            user_id = self.store.create_user(user, referral_bonus=bonus, voucher=voucher)
        except IntegrityError as exc:
            # A concurrent registration won the race on a UNIQUE column.
            raise ApiError(ErrorCode.conflict, "Email or username already exist!") from exc

        logger.info(
            "User registered id=%s username=%s referred_by=%s",
            user_id,
            username,
            referrer.id if referrer else None,
        )
        return self.store.get_by_id(USER_ROLE, user_id)

    def register_organizer(
        self,
        username: str,
        email: str,
        password: str,
        organization_name: str | None = None,
    ) -> Organizer:
        """Create an ORGANIZER account. No referral or voucher logic applies."""
        self._ensure_available(ORGANIZER_ROLE, email, username)
        organizer = Organizer(
            username=username,
            email=email,
            hashed_password=hash_password(password),
            organization_name=organization_name,
        )
        try:
            organizer_id = self.store.create_organizer(organizer)
        except IntegrityError as exc:
            raise ApiError(ErrorCode.conflict, "Email or username already exist!") from exc
        logger.info("Organizer registered id=%s username=%s", organizer_id, username)
        return self.store.get_by_id(ORGANIZER_ROLE, organizer_id)

    def _ensure_available(self, role: str, email: str, username: str) -> None:
        if self.store.get_by_email(role, email) is not None:
            raise ApiError(ErrorCode.conflict, "Email already exist!")
        if self.store.get_by_username(role, username) is not None:
            raise ApiError(ErrorCode.conflict, "Username already used!")

    def _unique_referral_code(self, username: str) -> str:
        code = generate_referral_code(username)
        for _ in range(_MAX_CODE_ATTEMPTS):
            if self.store.get_user_by_referral_code(code) is None:
                break
            code = generate_referral_code(username)
        return code

    def _new_voucher(self) -> Voucher:
        code = generate_voucher_code()
        for _ in range(_MAX_CODE_ATTEMPTS):
            if not self.store.voucher_code_exists(code):
                break
            code = generate_voucher_code()
        now = datetime.now(timezone.utc)
        return Voucher(
            code=code,
            user_id=None,
            quota=VOUCHER_QUOTA,
            discount_amount=VOUCHER_DISCOUNT_AMOUNT,
            valid_from=now.isoformat(),
            valid_until=add_months(now, VOUCHER_VALID_MONTHS).isoformat(),
            is_active=True,
        )

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, role: str, username_or_email: str, password: str) -> tuple[Account, str]:
        """Verify credentials and return (account, bearer token).

        Input containing "@" is treated as an email, anything else as a
        username.
        """
        identity = username_or_email.strip()
        if "@" in identity:
            account = self.store.get_by_email(role, identity)
        else:
            account = self.store.get_by_username(role, identity)
        if account is None:
            raise ApiError(ErrorCode.not_found, "Account not found!")
        if not verify_password(password, account.hashed_password):
            raise ApiError(ErrorCode.unauthorized, "Invalid password!")
        logger.info("Login succeeded role=%s id=%s", role, account.id)
        return account, create_access_token(account)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, role: str, email: str) -> PasswordResetTicket:
        """Issue a reset token for the account owning this email and mail the link.

        The email is rendered before the token is stored. If sending fails in
        any way, the stored token is cleared again, so an account never holds
        a token its owner was not told about.

        A disabled mailer (no MAIL_API_KEY) delivers nothing. The token is then
        kept only when DEBUG or EXPOSE_RESET_TOKEN lets the caller see it;
        otherwise it is cleared and mail_delivery_failed is raised.
        """
        account = self.store.get_by_email(role, email)
        if account is None:
            raise ApiError(ErrorCode.not_found, "Account not found!")

        token = generate_reset_token()
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.settings.reset_token_expire_seconds)
        path = "reset-password" if role == USER_ROLE else "organizer/reset-password"
        link = f"{self.settings.frontend_url.rstrip('/')}/{path}?token={token}"
        html = render_template(
            "reset_password.html",
            name=account.first_name or account.username,
            link=link,
            expires_minutes=self.settings.reset_token_expire_seconds // 60,
        )

        self.store.set_reset_token(role, account.id, token, expires_at.isoformat())
        keep_token = False
        try:
            delivered = self.mailer.send(account.email, "Reset your TicketHub password", html)
            keep_token = delivered or self.settings.debug or self.settings.expose_reset_token
        except MailDeliveryError as exc:
            raise ApiError(
                ErrorCode.mail_delivery_failed,
                "Could not send the reset email. Please try again later.",
            ) from exc
        finally:
            if not keep_token:
                self.store.clear_reset_token(role, account.id)

        if not delivered:
            if not keep_token:
                raise ApiError(ErrorCode.mail_delivery_failed, "Email delivery is not configured.")
            logger.warning("Reset email for role=%s id=%s not sent (delivery disabled)", role, account.id)

        logger.info("Password reset requested role=%s id=%s", role, account.id)
        return PasswordResetTicket(account=account, token=token, expires_at=expires_at, delivered=delivered)

    def complete_password_reset(self, role: str, token: str, new_password: str) -> Account:
        """Exchange a matching, unexpired reset token for a new password.

        The password hash, token and expiry are written by a single UPDATE, so
        the token cannot be reused.
        """
        account = self.store.get_by_reset_token(role, token) if token else None
        if account is None or not account.reset_password_expiry:
            raise ApiError(ErrorCode.invalid_or_expired_token, "Invalid or expired token!")
        if _parse_iso(account.reset_password_expiry) <= datetime.now(timezone.utc):
            raise ApiError(ErrorCode.invalid_or_expired_token, "Invalid or expired token!")

        self.store.update_password(role, account.id, hash_password(new_password))
        logger.info("Password reset completed role=%s id=%s", role, account.id)
        return self.store.get_by_id(role, account.id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, role: str, account_id: int) -> Profile:
        account = self._require_account(role, account_id)
        if role != USER_ROLE:
            return Profile(account=account)
        return Profile(
            account=account,
            points_balance=self.store.points_balance(account_id),
            points=self.store.list_points(account_id),
            vouchers=self.store.list_vouchers(account_id),
        )

    def update_profile(self, role: str, account_id: int, **fields) -> Account:
        """Apply the non-None profile fields. A call with nothing to change is a no-op."""
        self._require_account(role, account_id)
        updates = {k: v for k, v in fields.items() if v is not None}
        if updates:
            self.store.update_profile(role, account_id, **updates)
        return self.store.get_by_id(role, account_id)

    def change_password(self, role: str, account_id: int, new_password: str) -> None:
        """Set a new password for an authenticated account; any pending reset token is dropped."""
        self._require_account(role, account_id)
        self.store.update_password(role, account_id, hash_password(new_password))
        logger.info("Password changed role=%s id=%s", role, account_id)

    def _require_account(self, role: str, account_id: int) -> Account:
        account = self.store.get_by_id(role, account_id)
        if account is None:
            raise ApiError(ErrorCode.not_found, "Account not found!")
        return account
