"""
core/errors.py -- The single domain error raised by TicketHub workflows.

Every expected failure (duplicate account, bad referral code, wrong password,
stale reset token, ...) is an ApiError tagged with an ErrorCode. The code
decides the HTTP status; api/main.py turns the error into the standard
{"error": {"code", "message"}} envelope.

Anything that is not an ApiError (store outage, bug) propagates untouched
and ends up in the generic 500 handler.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    conflict = "conflict"
    invalid_referral = "invalid_referral"
    invalid_or_expired_token = "invalid_or_expired_token"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    mail_delivery_failed = "mail_delivery_failed"


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.conflict: 400,
    ErrorCode.invalid_referral: 400,
    ErrorCode.invalid_or_expired_token: 400,
    ErrorCode.unauthorized: 401,
    ErrorCode.forbidden: 403,
    ErrorCode.not_found: 404,
    ErrorCode.mail_delivery_failed: 502,
}


class ApiError(Exception):
    """A domain failure carrying a human-readable message and an HTTP status.

    status_code defaults to the status mapped for the code; pass it explicitly
    only to override that mapping.
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code if status_code is not None else _STATUS_CODES[code]

    def __repr__(self) -> str:
        return f"ApiError(code={self.code.value!r}, status_code={self.status_code}, message={self.message!r})"
