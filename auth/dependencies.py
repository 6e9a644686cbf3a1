"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an "Authorization: Bearer <token>" header carrying
a JWT issued by auth.tokens.create_access_token(). The token's role claim
selects the account table, and the account is re-read from the store so a
deleted account cannot keep using an unexpired token.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.
require_role(...) builds a dependency that additionally raises HTTP 403 when
the account's role is not one of the allowed roles.

Layer rule: no imports from events/. auth/dependencies.py may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.models import ROLES, Account
from auth.tokens import decode_access_token


def try_get_current_account(request: Request) -> Account | None:
    """Authenticate the request via its Bearer token. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:])
    if payload is None or payload["role"] not in ROLES:
        return None
    account_store = request.app.state.account_store
    return account_store.get_by_id(payload["role"], payload["id"])


def get_current_account(request: Request) -> Account:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


def require_role(*roles: str) -> Callable[[Request], Account]:
    """Return a dependency that admits only accounts holding one of the given roles.

    Use as a FastAPI dependency:
        @router.post("/create-event")
        async def route(organizer = Depends(require_role("ORGANIZER"))): ...
    """

    def dependency(request: Request) -> Account:
        account = get_current_account(request)
        if account.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have access to this resource."},
            )
        return account

    return dependency
