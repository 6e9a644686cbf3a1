"""
tests/conftest.py -- Shared test fixtures for TicketHub.

This module provides:
  - FakeMailer: records outgoing mail, optionally fails every send
  - account_store / mailer / auth_service: unit-level fixtures over a private
    in-memory database
  - api / api_exposed: TestClient harnesses wired to isolated stores through a
    patched lifespan (api_exposed turns EXPOSE_RESET_TOKEN on)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient harness because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each harness gets a unique DB name so tests never share state.

DEBUG and UPLOAD_DIR must be set before any project import so get_settings()
auto-generates SECRET_KEY and the static mount points at a temp directory.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any auth/core import so get_settings() picks them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="tickethub-uploads-"))

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.service import AuthService
from auth.store import AccountStore
from core.config import get_settings
from core.mailer import MailDeliveryError
from events.store import EventStore

# Rate limits are exercised by slowapi itself; the suite logs in far more
# often than LOGIN_RATE_LIMIT allows.
limiter.enabled = False


# ---------------------------------------------------------------------------
# Fake mail transport
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    to: str
    subject: str
    html: str


@dataclass
class FakeMailer:
    """Mailer stand-in.

    fail=True makes every send raise MailDeliveryError. enabled=False mimics a
    Mailer without MAIL_API_KEY: nothing is recorded and send returns False.
    """

    fail: bool = False
    enabled: bool = True
    sent: list[SentMail] = field(default_factory=list)

    def send(self, to: str, subject: str, html: str) -> bool:
        if self.fail:
            raise MailDeliveryError("mail API unreachable")
        if not self.enabled:
            return False
        self.sent.append(SentMail(to=to, subject=subject, html=html))
        return True

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def event_store() -> Generator[EventStore, None, None]:
    store = EventStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def auth_service(account_store: AccountStore, mailer: FakeMailer) -> AuthService:
    return AuthService(account_store, mailer, get_settings())


# ---------------------------------------------------------------------------
# HTTP harness
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    """A running TestClient plus direct handles on the stores behind it."""

    client: TestClient
    account_store: AccountStore
    event_store: EventStore
    mailer: FakeMailer

    def register_user(self, username: str, password: str = "pw1", referral_code: str | None = None) -> dict:
        body = {"username": username, "email": f"{username}@x.com", "password": password}
        if referral_code is not None:
            body["referral_code"] = referral_code
        resp = self.client.post("/api/v1/register", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    def register_organizer(self, username: str, password: str = "orgpw", organization_name: str = "Acme Live") -> dict:
        body = {
            "username": username,
            "email": f"{username}@org.com",
            "password": password,
            "organization_name": organization_name,
        }
        resp = self.client.post("/api/v1/register/organizer", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    def login(self, username_or_email: str, password: str, organizer: bool = False) -> str:
        path = "/api/v1/organizer/login" if organizer else "/api/v1/login"
        resp = self.client.post(path, json={"username_or_email": username_or_email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["access_token"]

    @staticmethod
    def auth(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _harness(expose_reset_token: bool) -> Generator[ApiHarness, None, None]:
    """Build isolated stores, wire them in through a test lifespan, and run a TestClient."""
    db_url = f"sqlite:///file:test_tickethub_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    account_store = AccountStore(db_url=db_url)
    event_store = EventStore(db_url=db_url)
    mailer = FakeMailer()
    settings = get_settings().model_copy(update={"expose_reset_token": expose_reset_token})

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.account_store = account_store
        app.state.event_store = event_store
        app.state.mailer = mailer
        app.state.auth_service = AuthService(account_store, mailer, settings)
        yield

    app.router.lifespan_context = test_lifespan

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, account_store=account_store, event_store=event_store, mailer=mailer)

    event_store.close()
    account_store.close()


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Harness with production defaults (reset token never echoed)."""
    yield from _harness(expose_reset_token=False)


@pytest.fixture
def api_exposed() -> Generator[ApiHarness, None, None]:
    """Harness with EXPOSE_RESET_TOKEN enabled."""
    yield from _harness(expose_reset_token=True)
