"""Unit tests for auth/service.py -- registration, login, password reset, profile.

Runs AuthService against an in-memory AccountStore and a FakeMailer, with no
HTTP layer involved.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import ORGANIZER_ROLE, USER_ROLE
from auth.service import (
    AuthService,
    REFERRAL_BONUS_POINTS,
    VOUCHER_DISCOUNT_AMOUNT,
    add_months,
    generate_referral_code,
    generate_voucher_code,
)
from auth.tokens import decode_access_token, verify_password
from core.config import get_settings
from core.errors import ApiError, ErrorCode

# ---------------------------------------------------------------------------
# Code generators and date helper
# ---------------------------------------------------------------------------


def test_referral_code_format():
    code = generate_referral_code("alice")
    prefix, suffix = code.rsplit("_", 1)
    assert prefix == "ref_alice"
    assert len(suffix) == 4
    assert suffix.isalnum() and suffix == suffix.lower()


def test_voucher_code_format():
    code = generate_voucher_code()
    assert code.startswith("VCR-")
    assert len(code) == 12


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (datetime(2025, 1, 15), 3, datetime(2025, 4, 15)),
        (datetime(2025, 11, 30), 3, datetime(2026, 2, 28)),
        (datetime(2024, 11, 30), 3, datetime(2025, 2, 28)),
        (datetime(2023, 11, 29), 3, datetime(2024, 2, 29)),
        (datetime(2025, 10, 31), 1, datetime(2025, 11, 30)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def test_register_user_hashes_password_and_assigns_referral_code(auth_service):
    user = auth_service.register_user("alice", "alice@x.com", "pw1")
    assert user.id is not None
    assert user.role == USER_ROLE
    assert user.hashed_password != "pw1"
    assert verify_password("pw1", user.hashed_password)
    assert user.referral_code.startswith("ref_alice_")
    assert user.referred_by_id is None


def test_register_user_duplicate_email_conflict(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    with pytest.raises(ApiError) as exc:
        auth_service.register_user("alice2", "alice@x.com", "pw1")
    assert exc.value.code == ErrorCode.conflict
    assert exc.value.status_code == 400
    assert exc.value.message == "Email already exist!"


def test_register_user_duplicate_username_conflict(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    with pytest.raises(ApiError) as exc:
        auth_service.register_user("alice", "other@x.com", "pw1")
    assert exc.value.code == ErrorCode.conflict
    assert exc.value.message == "Username already used!"


def test_invalid_referral_code_rejected_without_side_effects(auth_service, account_store):
    with pytest.raises(ApiError) as exc:
        auth_service.register_user("bob", "bob@x.com", "pw2", referral_code="ref_nobody_0000")
    assert exc.value.code == ErrorCode.invalid_referral
    assert exc.value.status_code == 400
    assert account_store.get_by_username(USER_ROLE, "bob") is None


def test_blank_referral_code_means_no_referral(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    bob = auth_service.register_user("bob", "bob@x.com", "pw2", referral_code="   ")
    assert bob.referred_by_id is None
    assert account_store.list_points(alice.id) == []
    assert account_store.list_vouchers(bob.id) == []


def test_unreferred_signup_gets_no_voucher(auth_service, account_store):
    user = auth_service.register_user("alice", "alice@x.com", "pw1")
    assert account_store.list_vouchers(user.id) == []
    assert account_store.points_balance(user.id) == 0


def test_referred_signup_rewards_both_sides(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    bob = auth_service.register_user("bob", "bob@x.com", "pw2", referral_code=alice.referral_code)

    assert bob.referred_by_id == alice.id

    entries = account_store.list_points(alice.id)
    assert len(entries) == 1
    assert entries[0].amount == REFERRAL_BONUS_POINTS
    assert entries[0].type == "EARN"
    # The new user earns nothing from being referred
    assert account_store.list_points(bob.id) == []

    vouchers = account_store.list_vouchers(bob.id)
    assert len(vouchers) == 1
    v = vouchers[0]
    assert v.discount_amount == VOUCHER_DISCOUNT_AMOUNT
    assert v.quota == 1
    assert v.is_active is True
    valid_from = datetime.fromisoformat(v.valid_from)
    assert datetime.fromisoformat(v.valid_until) == add_months(valid_from, 3)
    assert account_store.list_vouchers(alice.id) == []


def test_referral_code_used_twice_credits_twice(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    auth_service.register_user("bob", "bob@x.com", "pw2", referral_code=alice.referral_code)
    auth_service.register_user("carol", "carol@x.com", "pw3", referral_code=alice.referral_code)
    assert account_store.points_balance(alice.id) == 2 * REFERRAL_BONUS_POINTS


def test_register_organizer(auth_service):
    org = auth_service.register_organizer("acme", "ops@acme.com", "orgpw", organization_name="Acme Live")
    assert org.role == ORGANIZER_ROLE
    assert org.organization_name == "Acme Live"
    assert verify_password("orgpw", org.hashed_password)


def test_register_organizer_duplicate_conflict(auth_service):
    auth_service.register_organizer("acme", "ops@acme.com", "orgpw")
    with pytest.raises(ApiError) as exc:
        auth_service.register_organizer("acme2", "ops@acme.com", "orgpw")
    assert exc.value.code == ErrorCode.conflict


def test_user_and_organizer_may_share_identity(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    org = auth_service.register_organizer("alice", "alice@x.com", "orgpw")
    assert org.id is not None


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def test_login_by_username_and_by_email(auth_service):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")

    account, token = auth_service.login(USER_ROLE, "alice", "pw1")
    assert account.id == alice.id
    assert decode_access_token(token)["id"] == alice.id

    account, _ = auth_service.login(USER_ROLE, "alice@x.com", "pw1")
    assert account.id == alice.id


def test_login_unknown_account_not_found(auth_service):
    with pytest.raises(ApiError) as exc:
        auth_service.login(USER_ROLE, "ghost", "pw")
    assert exc.value.code == ErrorCode.not_found
    assert exc.value.status_code == 404


def test_login_wrong_password_unauthorized(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    with pytest.raises(ApiError) as exc:
        auth_service.login(USER_ROLE, "alice", "nope")
    assert exc.value.code == ErrorCode.unauthorized
    assert exc.value.status_code == 401


def test_login_is_scoped_to_role(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    with pytest.raises(ApiError) as exc:
        auth_service.login(ORGANIZER_ROLE, "alice", "pw1")
    assert exc.value.code == ErrorCode.not_found


def test_organizer_login_token_carries_organization_name(auth_service):
    auth_service.register_organizer("acme", "ops@acme.com", "orgpw", organization_name="Acme Live")
    _, token = auth_service.login(ORGANIZER_ROLE, "acme", "orgpw")
    claims = decode_access_token(token)
    assert claims["role"] == ORGANIZER_ROLE
    assert claims["organization_name"] == "Acme Live"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


def test_request_password_reset_stores_token_and_mails_link(auth_service, account_store, mailer):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    before = datetime.now(timezone.utc)

    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")

    stored = account_store.get_by_id(USER_ROLE, alice.id)
    assert stored.reset_password_token == ticket.token
    assert len(ticket.token) == 64
    expiry = datetime.fromisoformat(stored.reset_password_expiry)
    assert before + timedelta(minutes=59) < expiry <= datetime.now(timezone.utc) + timedelta(hours=1)
    assert ticket.delivered is True

    assert len(mailer.sent) == 1
    mail = mailer.sent[0]
    assert mail.to == "alice@x.com"
    assert f"/reset-password?token={ticket.token}" in mail.html


def test_organizer_reset_link_uses_organizer_path(auth_service, mailer):
    auth_service.register_organizer("acme", "ops@acme.com", "orgpw")
    ticket = auth_service.request_password_reset(ORGANIZER_ROLE, "ops@acme.com")
    assert f"/organizer/reset-password?token={ticket.token}" in mailer.sent[0].html


def test_request_password_reset_unknown_email(auth_service, mailer):
    with pytest.raises(ApiError) as exc:
        auth_service.request_password_reset(USER_ROLE, "ghost@x.com")
    assert exc.value.code == ErrorCode.not_found
    assert mailer.sent == []


def test_mail_failure_clears_token(auth_service, account_store, mailer):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    mailer.fail = True

    with pytest.raises(ApiError) as exc:
        auth_service.request_password_reset(USER_ROLE, "alice@x.com")

    assert exc.value.code == ErrorCode.mail_delivery_failed
    assert exc.value.status_code == 502
    stored = account_store.get_by_id(USER_ROLE, alice.id)
    assert stored.reset_password_token is None
    assert stored.reset_password_expiry is None


def test_complete_password_reset(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")

    auth_service.complete_password_reset(USER_ROLE, ticket.token, "newpw")

    stored = account_store.get_by_id(USER_ROLE, alice.id)
    assert stored.reset_password_token is None
    assert stored.reset_password_expiry is None
    auth_service.login(USER_ROLE, "alice", "newpw")
    with pytest.raises(ApiError) as exc:
        auth_service.login(USER_ROLE, "alice", "pw1")
    assert exc.value.code == ErrorCode.unauthorized


def test_reset_token_is_single_use(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    auth_service.complete_password_reset(USER_ROLE, ticket.token, "newpw")

    with pytest.raises(ApiError) as exc:
        auth_service.complete_password_reset(USER_ROLE, ticket.token, "again")
    assert exc.value.code == ErrorCode.invalid_or_expired_token


def test_newer_reset_request_replaces_older_token(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    first = auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    second = auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    assert first.token != second.token

    with pytest.raises(ApiError):
        auth_service.complete_password_reset(USER_ROLE, first.token, "newpw")
    auth_service.complete_password_reset(USER_ROLE, second.token, "newpw")


def test_expired_reset_token_rejected(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    past = (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()
    account_store.set_reset_token(USER_ROLE, alice.id, ticket.token, past)

    with pytest.raises(ApiError) as exc:
        auth_service.complete_password_reset(USER_ROLE, ticket.token, "newpw")
    assert exc.value.code == ErrorCode.invalid_or_expired_token
    assert exc.value.status_code == 400
    auth_service.login(USER_ROLE, "alice", "pw1")


@pytest.mark.parametrize("token", ["", "0" * 64, "not-a-token"])
def test_unknown_reset_token_rejected(auth_service, token):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    with pytest.raises(ApiError) as exc:
        auth_service.complete_password_reset(USER_ROLE, token, "newpw")
    assert exc.value.code == ErrorCode.invalid_or_expired_token


def test_user_reset_token_not_valid_for_organizer(auth_service):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    with pytest.raises(ApiError):
        auth_service.complete_password_reset(ORGANIZER_ROLE, ticket.token, "newpw")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def test_get_profile_includes_points_and_vouchers(auth_service):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    bob = auth_service.register_user("bob", "bob@x.com", "pw2", referral_code=alice.referral_code)

    alice_profile = auth_service.get_profile(USER_ROLE, alice.id)
    assert alice_profile.points_balance == REFERRAL_BONUS_POINTS
    assert alice_profile.vouchers == []

    bob_profile = auth_service.get_profile(USER_ROLE, bob.id)
    assert bob_profile.points_balance == 0
    assert len(bob_profile.vouchers) == 1


def test_update_profile_ignores_none(auth_service):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    auth_service.update_profile(USER_ROLE, alice.id, first_name="Alice", last_name=None)
    updated = auth_service.update_profile(USER_ROLE, alice.id, first_name=None, last_name="Liddell")
    assert updated.first_name == "Alice"
    assert updated.last_name == "Liddell"


def test_update_profile_missing_account(auth_service):
    with pytest.raises(ApiError) as exc:
        auth_service.update_profile(USER_ROLE, 999, first_name="x")
    assert exc.value.code == ErrorCode.not_found


def test_change_password_drops_pending_reset(auth_service, account_store):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    ticket = auth_service.request_password_reset(USER_ROLE, "alice@x.com")

    auth_service.change_password(USER_ROLE, alice.id, "changed")

    auth_service.login(USER_ROLE, "alice", "changed")
    with pytest.raises(ApiError):
        auth_service.complete_password_reset(USER_ROLE, ticket.token, "newpw")


def test_profile_lists_point_ledger(auth_service):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")
    auth_service.register_user("bob", "bob@x.com", "pw2", referral_code=alice.referral_code)
    profile = auth_service.get_profile(USER_ROLE, alice.id)
    assert [(p.amount, p.type) for p in profile.points] == [(REFERRAL_BONUS_POINTS, "EARN")]


# ---------------------------------------------------------------------------
# Unique-constraint races
# ---------------------------------------------------------------------------


def _skip_precheck(monkeypatch, store):
    """Let a duplicate reach the INSERT, as when two requests pass the pre-check together."""
    monkeypatch.setattr(store, "get_by_email", lambda role, email: None)
    monkeypatch.setattr(store, "get_by_username", lambda role, username: None)


def test_register_user_race_reported_as_conflict(auth_service, account_store, monkeypatch):
    auth_service.register_user("alice", "alice@x.com", "pw1")
    _skip_precheck(monkeypatch, account_store)

    with pytest.raises(ApiError) as exc:
        auth_service.register_user("alice", "alice@x.com", "pw1")
    assert exc.value.code == ErrorCode.conflict
    assert exc.value.status_code == 400
    assert exc.value.message == "Email or username already exist!"


def test_register_organizer_race_reported_as_conflict(auth_service, account_store, monkeypatch):
    auth_service.register_organizer("acme", "ops@acme.com", "orgpw")
    _skip_precheck(monkeypatch, account_store)

    with pytest.raises(ApiError) as exc:
        auth_service.register_organizer("acme", "ops@acme.com", "orgpw")
    assert exc.value.code == ErrorCode.conflict


# ---------------------------------------------------------------------------
# Reset request failure paths
# ---------------------------------------------------------------------------


def test_render_failure_stores_no_token(auth_service, account_store, mailer, monkeypatch):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")

    def broken_render(template_name, **context):
        raise RuntimeError("template missing")

    monkeypatch.setattr("auth.service.render_template", broken_render)

    with pytest.raises(RuntimeError):
        auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    assert account_store.get_by_id(USER_ROLE, alice.id).reset_password_token is None
    assert mailer.sent == []


def test_unexpected_send_error_clears_token(auth_service, account_store, mailer, monkeypatch):
    alice = auth_service.register_user("alice", "alice@x.com", "pw1")

    def exploding_send(to, subject, html):
        raise RuntimeError("socket closed")

    monkeypatch.setattr(mailer, "send", exploding_send)

    with pytest.raises(RuntimeError):
        auth_service.request_password_reset(USER_ROLE, "alice@x.com")
    stored = account_store.get_by_id(USER_ROLE, alice.id)
    assert stored.reset_password_token is None
    assert stored.reset_password_expiry is None


def test_disabled_mailer_in_production_clears_token(account_store, mailer):
    settings = get_settings().model_copy(update={"debug": False, "expose_reset_token": False})
    service = AuthService(account_store, mailer, settings)
    alice = service.register_user("alice", "alice@x.com", "pw1")
    mailer.enabled = False

    with pytest.raises(ApiError) as exc:
        service.request_password_reset(USER_ROLE, "alice@x.com")
    assert exc.value.code == ErrorCode.mail_delivery_failed
    assert account_store.get_by_id(USER_ROLE, alice.id).reset_password_token is None


def test_disabled_mailer_in_debug_keeps_token(account_store, mailer):
    settings = get_settings().model_copy(update={"debug": True, "expose_reset_token": False})
    service = AuthService(account_store, mailer, settings)
    alice = service.register_user("alice", "alice@x.com", "pw1")
    mailer.enabled = False

    ticket = service.request_password_reset(USER_ROLE, "alice@x.com")
    assert ticket.delivered is False
    assert account_store.get_by_id(USER_ROLE, alice.id).reset_password_token == ticket.token
