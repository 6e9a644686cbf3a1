"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and rewards.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_user / _row_to_organizer / _row_to_voucher / _row_to_point are the
mappers. Route, dependency and service code never touches SQL directly.

Users and organizers live in two separate tables with their own UNIQUE
constraints on username and email, so a name can exist once per variant.
Methods that work on either variant take the role ("USER" / "ORGANIZER")
and pick the table from it.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  create_user() writes the user row, the referrer's ledger entry and the new
  user's voucher on a single connection and commits once. If any insert
  fails the connection closes without commit and nothing is visible.

Layer rule: no imports from api/ or events/. core/ is allowed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select, text
from sqlalchemy.engine import Engine

from auth.models import ORGANIZER_ROLE, POINT_EARN, USER_ROLE, Account, Organizer, PointEntry, User, Voucher
from core.db import make_engine

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tickethub.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()


def _profile_columns() -> list[Column]:
    return [
        Column("first_name", String(100)),
        Column("last_name", String(100)),
        Column("address", Text),
        Column("phone_number", String(30)),
        Column("photo_url", Text),
    ]


def _credential_columns(role: str) -> list[Column]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("username", String(100), nullable=False, unique=True),
        Column("email", String(255), nullable=False, unique=True),
        Column("hashed_password", Text, nullable=False),
        Column("role", String(20), nullable=False, server_default=role),
        Column("reset_password_token", String(64), unique=True),
        Column("reset_password_expiry", String(32)),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
    ]


_users = Table(
    "users",
    _metadata,
    *_credential_columns(USER_ROLE),
    *_profile_columns(),
    Column("referral_code", String(150), unique=True),
    Column("referred_by_id", Integer),
)

_organizers = Table(
    "organizers",
    _metadata,
    *_credential_columns(ORGANIZER_ROLE),
    *_profile_columns(),
    Column("organization_name", String(255)),
)

_vouchers = Table(
    "vouchers",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(32), nullable=False, unique=True),
    Column("user_id", Integer, nullable=False),
    Column("quota", Integer, nullable=False),
    Column("discount_amount", Integer, nullable=False),
    Column("valid_from", String(32), nullable=False),
    Column("valid_until", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_points = Table(
    "point_entries",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("amount", Integer, nullable=False),
    Column("type", String(20), nullable=False, server_default=POINT_EARN),
    Column("created_at", String(32), nullable=False),
)

_TABLES: dict[str, Table] = {USER_ROLE: _users, ORGANIZER_ROLE: _organizers}

# Profile fields a PATCH may touch. Everything else (credentials, referral
# linkage, reset state) has its own dedicated method.
_PROFILE_FIELDS: dict[str, set[str]] = {
    USER_ROLE: {"first_name", "last_name", "address", "phone_number", "photo_url"},
    ORGANIZER_ROLE: {"first_name", "last_name", "address", "phone_number", "photo_url", "organization_name"},
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _table_for(role: str) -> Table:
    try:
        return _TABLES[role]
    except KeyError:
        raise ValueError(f"Unknown account role: {role!r}") from None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for User, Organizer, Voucher and PointEntry records.

    Usage:
        store = AccountStore()
        user_id = store.create_user(User(username="alice", email="a@x.com", hashed_password=h))
        user = store.get_by_username("USER", "alice")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Account creation
    # ------------------------------------------------------------------

    def create_user(
        self,
        user: User,
        referral_bonus: PointEntry | None = None,
        voucher: Voucher | None = None,
    ) -> int:
        """Insert a user and its referral rewards atomically; return the user ID.

        referral_bonus is the ledger entry credited to the referrer
        (user.referred_by_id). voucher is issued to the new user; its user_id
        is filled in here. The three inserts share one commit.

        Raises sqlalchemy.exc.IntegrityError if username, email, referral code
        or voucher code collide; in that case no row is written.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role=USER_ROLE,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    address=user.address,
                    phone_number=user.phone_number,
                    photo_url=user.photo_url,
                    referral_code=user.referral_code,
                    referred_by_id=user.referred_by_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            user_id = result.inserted_primary_key[0]
            if referral_bonus is not None:
                conn.execute(
                    _points.insert().values(
                        user_id=referral_bonus.user_id,
                        amount=referral_bonus.amount,
                        type=referral_bonus.type,
                        created_at=now,
                    )
                )
            if voucher is not None:
                conn.execute(
                    _vouchers.insert().values(
                        code=voucher.code,
                        user_id=user_id,
                        quota=voucher.quota,
                        discount_amount=voucher.discount_amount,
                        valid_from=voucher.valid_from,
                        valid_until=voucher.valid_until,
                        is_active=1 if voucher.is_active else 0,
                        created_at=now,
                    )
                )
            conn.commit()
        return user_id

    def create_organizer(self, organizer: Organizer) -> int:
        """Insert an organizer and return its ID. Raises IntegrityError on duplicates."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _organizers.insert().values(
                    username=organizer.username,
                    email=organizer.email,
                    hashed_password=organizer.hashed_password,
                    role=ORGANIZER_ROLE,
                    organization_name=organizer.organization_name,
                    first_name=organizer.first_name,
                    last_name=organizer.last_name,
                    address=organizer.address,
                    phone_number=organizer.phone_number,
                    photo_url=organizer.photo_url,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Account lookups
    # ------------------------------------------------------------------

    def get_by_id(self, role: str, account_id: int) -> Account | None:
        table = _table_for(role)
        return self._fetch_one(role, table.select().where(table.c.id == account_id))

    def get_by_email(self, role: str, email: str) -> Account | None:
        """Look up an account by exact email. Returns None if not found."""
        table = _table_for(role)
        return self._fetch_one(role, table.select().where(table.c.email == email))

    def get_by_username(self, role: str, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        table = _table_for(role)
        return self._fetch_one(role, table.select().where(table.c.username == username))

    def get_by_reset_token(self, role: str, token: str) -> Account | None:
        """Look up the account currently holding this reset token.

        Expiry is not checked here -- the caller compares
        reset_password_expiry against its own clock.
        """
        table = _table_for(role)
        return self._fetch_one(role, table.select().where(table.c.reset_password_token == token))

    def get_user_by_referral_code(self, code: str) -> User | None:
        return self._fetch_one(USER_ROLE, _users.select().where(_users.c.referral_code == code))

    def _fetch_one(self, role: str, stmt) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_account(role, row) if row is not None else None

    # ------------------------------------------------------------------
    # Account updates
    # ------------------------------------------------------------------

    def set_reset_token(self, role: str, account_id: int, token: str, expiry: str) -> bool:
        """Store a reset token together with its expiry. Returns False if the account is gone."""
        table = _table_for(role)
        with self.engine.connect() as conn:
            result = conn.execute(
                table.update()
                .where(table.c.id == account_id)
                .values(reset_password_token=token, reset_password_expiry=expiry, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def clear_reset_token(self, role: str, account_id: int) -> None:
        table = _table_for(role)
        with self.engine.connect() as conn:
            conn.execute(
                table.update()
                .where(table.c.id == account_id)
                .values(reset_password_token=None, reset_password_expiry=None, updated_at=_now_iso())
            )
            conn.commit()

    def update_password(self, role: str, account_id: int, hashed_password: str) -> bool:
        """Replace the password hash and clear any pending reset token in the same UPDATE."""
        table = _table_for(role)
        with self.engine.connect() as conn:
            result = conn.execute(
                table.update()
                .where(table.c.id == account_id)
                .values(
                    hashed_password=hashed_password,
                    reset_password_token=None,
                    reset_password_expiry=None,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def update_profile(self, role: str, account_id: int, **fields) -> bool:
        """Update profile fields on an account.

        Only keys in _PROFILE_FIELDS[role] are accepted. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - _PROFILE_FIELDS[role]
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        table = _table_for(role)
        with self.engine.connect() as conn:
            result = conn.execute(
                table.update().where(table.c.id == account_id).values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    def voucher_code_exists(self, code: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_vouchers.c.id).where(_vouchers.c.code == code)).fetchone()
        return row is not None

    def list_vouchers(self, user_id: int) -> list[Voucher]:
        """Return all vouchers issued to a user, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _vouchers.select().where(_vouchers.c.user_id == user_id).order_by(_vouchers.c.id)
            ).fetchall()
        return [_row_to_voucher(r) for r in rows]

    def list_points(self, user_id: int) -> list[PointEntry]:
        """Return a user's ledger entries in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(_points.select().where(_points.c.user_id == user_id).order_by(_points.c.id)).fetchall()
        return [_row_to_point(r) for r in rows]

    def points_balance(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.coalesce(func.sum(_points.c.amount), 0)).where(_points.c.user_id == user_id)
            ).scalar()
        return int(total or 0)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(role: str, row) -> Account:
    return _row_to_user(row) if role == USER_ROLE else _row_to_organizer(row)


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        first_name=row.first_name,
        last_name=row.last_name,
        address=row.address,
        phone_number=row.phone_number,
        photo_url=row.photo_url,
        referral_code=row.referral_code,
        referred_by_id=row.referred_by_id,
        reset_password_token=row.reset_password_token,
        reset_password_expiry=row.reset_password_expiry,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_organizer(row) -> Organizer:
    return Organizer(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        organization_name=row.organization_name,
        first_name=row.first_name,
        last_name=row.last_name,
        address=row.address,
        phone_number=row.phone_number,
        photo_url=row.photo_url,
        reset_password_token=row.reset_password_token,
        reset_password_expiry=row.reset_password_expiry,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_voucher(row) -> Voucher:
    return Voucher(
        id=row.id,
        code=row.code,
        user_id=row.user_id,
        quota=row.quota,
        discount_amount=row.discount_amount,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_point(row) -> PointEntry:
    return PointEntry(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        type=row.type,
        created_at=row.created_at,
    )
