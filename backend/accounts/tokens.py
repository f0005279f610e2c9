"""
Access/refresh token helpers.

Access tokens are short-lived bearer credentials; refresh tokens live longer,
are stored on the user row and are rotated every time they are exchanged.
Both are HS256 JWTs signed with separate secrets.
"""
from __future__ import annotations

import hmac
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, NoReturn

import jwt
from django.conf import settings

from .exceptions import ApiError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    pass


class InvalidTokenError(TokenError):
    pass


class RefreshTokenReusedError(TokenError):
    """The presented refresh token is no longer the one stored on the user."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_access_token(user) -> str:
    issued_at = _now()
    payload = {
        "sub": str(user.pk),
        "email": user.email,
        "username": user.username,
        "fullname": user.fullname,
        "type": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=settings.ACCESS_TOKEN_LIFETIME),
    }
    return jwt.encode(payload, settings.ACCESS_TOKEN_SECRET, algorithm=ALGORITHM)


def generate_refresh_token(user) -> str:
    issued_at = _now()
    payload = {
        "sub": str(user.pk),
        "type": REFRESH_TOKEN_TYPE,
        # Distinguishes tokens minted within the same second
        "jti": uuid.uuid4().hex,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=settings.REFRESH_TOKEN_LIFETIME),
    }
    return jwt.encode(payload, settings.REFRESH_TOKEN_SECRET, algorithm=ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    if not token:
        raise InvalidTokenError("Token is empty")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenError(str(exc)) from exc

    if payload.get("type") != expected_type:
        raise InvalidTokenError(f"Expected a {expected_type} token")
    return payload


def decode_access_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.ACCESS_TOKEN_SECRET, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, settings.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE)


def issue_token_pair(user) -> TokenPair:
    """
    Mint a new access/refresh pair and persist the refresh token on the user.

    Any previously stored refresh token stops being accepted.
    """
    try:
        access_token = generate_access_token(user)
        refresh_token = generate_refresh_token(user)
        user.refresh_token = refresh_token
        user.save(update_fields=["refresh_token"])
    except Exception as exc:
        _token_generation_failed(user, exc)

    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def rotate_token_pair(user, presented_token: str) -> TokenPair:
    """
    Exchange ``presented_token`` for a new pair.

    The stored token is swapped with a conditional UPDATE, so when the same
    refresh token is presented twice concurrently only one request wins; the
    other gets :class:`RefreshTokenReusedError`.
    """
    stored = user.refresh_token or ""
    if not stored or not hmac.compare_digest(presented_token, stored):
        raise RefreshTokenReusedError("Refresh token does not match the stored token")

    try:
        access_token = generate_access_token(user)
        refresh_token = generate_refresh_token(user)
        swapped = (
            type(user)._default_manager
            .filter(pk=user.pk, refresh_token=presented_token)
            .update(refresh_token=refresh_token)
        )
    except Exception as exc:
        _token_generation_failed(user, exc)

    if swapped != 1:
        raise RefreshTokenReusedError("Refresh token was rotated by another request")

    user.refresh_token = refresh_token
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def _token_generation_failed(user, exc: Exception) -> NoReturn:
    logger.exception(
        "Token generation failed",
        exc_info=exc,
        extra={"error_code": "TOKEN_GENERATION_FAILED", "user_id": getattr(user, "pk", None)},
    )
    raise ApiError(500, "Something went wrong while generating refresh and access token") from exc


def revoke_refresh_token(user) -> None:
    user.refresh_token = ""
    user.save(update_fields=["refresh_token"])
