"""
middleware/auth_middleware.py — Bearer token authentication decorator.

Tokens are issued by the external identity provider; this service only
verifies them. The `sub` claim is the caller's member id (an opaque string,
e.g. a Firebase uid) and is the only identity the rest of the app sees.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies the signature and expiry with PyJWT
  3. Attaches the `sub` claim to flask.g.user_id
  4. Raises the appropriate 401 AppError if any step fails

Authentication only. Membership and ownership checks (403) live in the
service layer; services receive the user id as a plain string argument.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, or bad `sub`
  TOKEN_EXPIRED  (401) — valid token whose exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from billsplit.app.errors import AppError, ErrorCode


# Matches the String(128) user id columns.
MAX_USER_ID_LENGTH = 128


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer authentication.

    Usage:
        @groups_bp.route("", methods=["GET"])
        @require_auth
        def list_groups():
            user_id = g.user_id  # always a non-empty str when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Verifies the bearer token and sets flask.g.user_id.

    Raises AppError on any failure; the global error handler renders it.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    try:
        payload = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        # Bad signature, malformed token, invalid claims, ...
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip() or len(sub) > MAX_USER_ID_LENGTH:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' claim.",
            401,
        )

    g.user_id = sub
