"""
api/routes/v1/profile.py -- Profile endpoints for the authenticated account.

Routes:
  GET   /api/v1/profile                       -- USER profile + points + vouchers
  PATCH /api/v1/profile                       -- USER profile update (multipart, optional image)
  PATCH /api/v1/profile/password              -- USER password change
  GET   /api/v1/organizer/profile             -- ORGANIZER profile
  PATCH /api/v1/organizer/profile             -- ORGANIZER profile update (multipart, optional image)
  PATCH /api/v1/organizer/profile/password    -- ORGANIZER password change

Every route is role-gated: a USER token on an organizer route (or the other
way round) gets 403, a missing or invalid token gets 401. The account id is
always taken from the token, never from the request, so one account cannot
edit another.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from api.models import ChangePasswordRequest, MessageResponse, ProfileResponse
from api.uploads import save_image
from auth.dependencies import require_role
from auth.models import ORGANIZER_ROLE, USER_ROLE, Account
from auth.service import AuthService

router = APIRouter()

_require_user = require_role(USER_ROLE)
_require_organizer = require_role(ORGANIZER_ROLE)


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# USER
# ---------------------------------------------------------------------------


@router.get("/profile", response_model=ProfileResponse)
async def get_user_profile(request: Request, account: Account = Depends(_require_user)) -> ProfileResponse:
    profile = _service(request).get_profile(USER_ROLE, account.id)
    return ProfileResponse.from_profile(profile)


@router.patch("/profile", response_model=ProfileResponse)
async def update_user_profile(
    request: Request,
    account: Account = Depends(_require_user),
    first_name: Optional[str] = Form(default=None, max_length=100),
    last_name: Optional[str] = Form(default=None, max_length=100),
    address: Optional[str] = Form(default=None, max_length=500),
    phone_number: Optional[str] = Form(default=None, max_length=30),
    image: Optional[UploadFile] = File(default=None),
) -> ProfileResponse:
    """Update any subset of profile fields; an attached image replaces the photo."""
    photo_url = await save_image(image) if image is not None else None
    service = _service(request)
    service.update_profile(
        USER_ROLE,
        account.id,
        first_name=first_name,
        last_name=last_name,
        address=address,
        phone_number=phone_number,
        photo_url=photo_url,
    )
    return ProfileResponse.from_profile(service.get_profile(USER_ROLE, account.id))


@router.patch("/profile/password", response_model=MessageResponse)
async def change_user_password(
    request: Request,
    body: ChangePasswordRequest,
    account: Account = Depends(_require_user),
) -> MessageResponse:
    _service(request).change_password(USER_ROLE, account.id, body.new_password)
    return MessageResponse(message="Password updated.")


# ---------------------------------------------------------------------------
# ORGANIZER
# ---------------------------------------------------------------------------


@router.get("/organizer/profile", response_model=ProfileResponse)
async def get_organizer_profile(request: Request, account: Account = Depends(_require_organizer)) -> ProfileResponse:
    profile = _service(request).get_profile(ORGANIZER_ROLE, account.id)
    return ProfileResponse.from_profile(profile)


@router.patch("/organizer/profile", response_model=ProfileResponse)
async def update_organizer_profile(
    request: Request,
    account: Account = Depends(_require_organizer),
    organization_name: Optional[str] = Form(default=None, max_length=255),
    first_name: Optional[str] = Form(default=None, max_length=100),
    last_name: Optional[str] = Form(default=None, max_length=100),
    address: Optional[str] = Form(default=None, max_length=500),
    phone_number: Optional[str] = Form(default=None, max_length=30),
    image: Optional[UploadFile] = File(default=None),
) -> ProfileResponse:
    photo_url = await save_image(image) if image is not None else None
    service = _service(request)
    service.update_profile(
        ORGANIZER_ROLE,
        account.id,
        organization_name=organization_name,
        first_name=first_name,
        last_name=last_name,
        address=address,
        phone_number=phone_number,
        photo_url=photo_url,
    )
    return ProfileResponse.from_profile(service.get_profile(ORGANIZER_ROLE, account.id))


@router.patch("/organizer/profile/password", response_model=MessageResponse)
async def change_organizer_password(
    request: Request,
    body: ChangePasswordRequest,
    account: Account = Depends(_require_organizer),
) -> MessageResponse:
    _service(request).change_password(ORGANIZER_ROLE, account.id, body.new_password)
    return MessageResponse(message="Password updated.")
