"""
api/routes/v1/events.py -- Event creation and public event browsing.

Routes:
  POST /api/v1/create-event      -- ORGANIZER only; multipart form with required image
  GET  /api/v1/events            -- paginated list, soonest first (public)
  GET  /api/v1/filtered-events   -- filter by category and/or location (public)
  GET  /api/v1/event/{slug}      -- single event by slug (public)

The organizer id on a new event always comes from the bearer token.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from sqlalchemy.exc import IntegrityError

from api.models import ErrorDetail, EventListResponse, EventResponse
from api.uploads import discard_upload, save_image
from auth.dependencies import require_role
from auth.models import ORGANIZER_ROLE, Account
from core.errors import ApiError, ErrorCode
from events.models import Event
from events.store import EventStore

logger = logging.getLogger("tickethub.events")

router = APIRouter()


def _parse_datetime(field: str, value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail(
                code="validation_error",
                message=f"{field} must be an ISO 8601 date or datetime.",
            ).model_dump(),
        ) from None


@router.post("/create-event", response_model=EventResponse, status_code=201)
async def create_event(
    request: Request,
    organizer: Account = Depends(require_role(ORGANIZER_ROLE)),
    title: str = Form(min_length=1, max_length=255),
    description: str = Form(min_length=1, max_length=5000),
    category: str = Form(min_length=1, max_length=100),
    location: str = Form(min_length=1, max_length=255),
    start_date: str = Form(min_length=1),
    end_date: str = Form(min_length=1),
    price: int = Form(default=0, ge=0),
    available_seats: int = Form(ge=0),
    image: UploadFile = File(),
) -> EventResponse:
    """Publish a new event with its cover image."""
    start = _parse_datetime("start_date", start_date)
    end = _parse_datetime("end_date", end_date)
    if (end.tzinfo is None) == (start.tzinfo is None) and end < start:
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail(code="validation_error", message="end_date must not be before start_date.").model_dump(),
        )

    image_url = await save_image(image)
    store: EventStore = request.app.state.event_store
    try:
        event_id = store.create_event(
            Event(
                organizer_id=organizer.id,
                title=title,
                description=description,
                category=category,
                location=location,
                start_date=start.isoformat(),
                end_date=end.isoformat(),
                price=price,
                available_seats=available_seats,
                image_url=image_url,
            )
        )
    except IntegrityError as exc:
        # A concurrent insert took the same slug between the check and the write.
        discard_upload(image_url)
        raise ApiError(ErrorCode.conflict, "An event with this title was just created. Please retry.") from exc
    created = store.get_event(event_id)
    logger.info("Event created id=%s slug=%s organizer=%s", event_id, created.slug, organizer.id)
    return EventResponse.from_event(created)


@router.get("/events", response_model=EventListResponse)
def list_events(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> EventListResponse:
    store: EventStore = request.app.state.event_store
    events = store.list_events(offset=(page - 1) * limit, limit=limit)
    return EventListResponse(
        items=[EventResponse.from_event(e) for e in events],
        total=store.count_events(),
        page=page,
        limit=limit,
    )


@router.get("/filtered-events", response_model=list[EventResponse])
def filter_events(
    request: Request,
    category: Optional[str] = Query(default=None, max_length=100),
    location: Optional[str] = Query(default=None, max_length=255),
) -> list[EventResponse]:
    """Case-insensitive substring match on category and/or location."""
    store: EventStore = request.app.state.event_store
    return [EventResponse.from_event(e) for e in store.filter_events(category=category, location=location)]


@router.get("/event/{slug}", response_model=EventResponse)
def get_event_by_slug(request: Request, slug: str) -> EventResponse:
    store: EventStore = request.app.state.event_store
    ev = store.get_by_slug(slug)
    if ev is None:
        raise ApiError(ErrorCode.not_found, "Event not found!")
    return EventResponse.from_event(ev)
