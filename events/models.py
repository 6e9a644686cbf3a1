"""
events/models.py -- Domain dataclass for events.

Pure data container. EventStore owns slug generation and persistence.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Event:
    """An event published by an organizer.

    slug is derived from the title on insert and is the public lookup key
    (GET /event/{slug}). price is in the smallest currency unit; 0 = free.

    id is None before the record is written to the database.
    """

    organizer_id: int
    title: str
    description: str
    category: str
    location: str
    start_date: str  # ISO 8601
    end_date: str  # ISO 8601
    price: int = 0
    available_seats: int = 0
    image_url: Optional[str] = None
    slug: str = ""
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
