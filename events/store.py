"""
events/store.py -- SQLAlchemy Core persistence layer for events.

Pattern: Repository + Data Mapper, same as auth/store.py. EventStore is the
repository; _row_to_event is the mapper.

Slugs: create_event() derives a URL slug from the title ("Jazz Night!" ->
"jazz-night"). When the slug is taken, a short random suffix is appended
("jazz-night-4f2a") until a free one is found.

Filtering: category and location filters are case-insensitive substring
matches, passed as bound parameters.

Usage:
    store = EventStore()
    event_id = store.create_event(event)
    store.get_by_slug("jazz-night")
    store.close()
"""

import re
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from core.db import make_engine
from events.models import Event

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tickethub.db'}"

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_MAX_SLUG_ATTEMPTS = 10

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_events = Table(
    "events",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("organizer_id", Integer, nullable=False),
    Column("title", String(255), nullable=False),
    Column("slug", String(300), nullable=False, unique=True),
    Column("description", Text, nullable=False),
    Column("category", String(100), nullable=False),
    Column("location", String(255), nullable=False),
    Column("start_date", String(32), nullable=False),
    Column("end_date", String(32), nullable=False),
    Column("price", Integer, nullable=False, server_default="0"),
    Column("available_seats", Integer, nullable=False, server_default="0"),
    Column("image_url", Text),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(title: str) -> str:
    """Lowercase the title and collapse every run of non-alphanumerics into one hyphen."""
    slug = _SLUG_STRIP.sub("-", title.lower()).strip("-")
    return slug or "event"


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class EventStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_event(self, ev: Event) -> int:
        """Insert a new event with a freshly derived unique slug and return its ID."""
        slug = self._unique_slug(slugify(ev.title))
        with self.engine.connect() as conn:
            result = conn.execute(
                _events.insert().values(
                    organizer_id=ev.organizer_id,
                    title=ev.title,
                    slug=slug,
                    description=ev.description,
                    category=ev.category,
                    location=ev.location,
                    start_date=ev.start_date,
                    end_date=ev.end_date,
                    price=ev.price,
                    available_seats=ev.available_seats,
                    image_url=ev.image_url,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def _unique_slug(self, base: str) -> str:
        slug = base
        for _ in range(_MAX_SLUG_ATTEMPTS):
            if not self.slug_exists(slug):
                return slug
            slug = f"{base}-{secrets.token_hex(2)}"
        # Fall through with a longer suffix; the UNIQUE constraint is the final guard.
        return f"{base}-{secrets.token_hex(4)}"

    def slug_exists(self, slug: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_events.c.id).where(_events.c.slug == slug)).fetchone()
        return row is not None

    def get_event(self, event_id: int) -> Optional[Event]:
        with self.engine.connect() as conn:
            row = conn.execute(_events.select().where(_events.c.id == event_id)).fetchone()
        return _row_to_event(row) if row is not None else None

    def get_by_slug(self, slug: str) -> Optional[Event]:
        """Look up an event by its exact slug. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_events.select().where(_events.c.slug == slug)).fetchone()
        return _row_to_event(row) if row is not None else None

    def list_events(self, offset: int = 0, limit: int = 20) -> list[Event]:
        """Return a page of events, soonest start date first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _events.select().order_by(_events.c.start_date, _events.c.id).offset(offset).limit(limit)
            ).fetchall()
        return [_row_to_event(r) for r in rows]

    def count_events(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_events)).scalar() or 0

    def filter_events(self, category: Optional[str] = None, location: Optional[str] = None) -> list[Event]:
        """Return events whose category and/or location contain the given text (case-insensitive).

        With neither filter set, every event is returned.
        """
        stmt = _events.select()
        if category:
            stmt = stmt.where(func.lower(_events.c.category).contains(category.lower(), autoescape=True))
        if location:
            stmt = stmt.where(func.lower(_events.c.location).contains(location.lower(), autoescape=True))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_events.c.start_date, _events.c.id)).fetchall()
        return [_row_to_event(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_event(row) -> Event:
    return Event(
        id=row.id,
        organizer_id=row.organizer_id,
        title=row.title,
        slug=row.slug,
        description=row.description,
        category=row.category,
        location=row.location,
        start_date=row.start_date,
        end_date=row.end_date,
        price=row.price,
        available_seats=row.available_seats,
        image_url=row.image_url,
        created_at=row.created_at,
    )
