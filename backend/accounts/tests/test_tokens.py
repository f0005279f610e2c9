import time

import jwt
import pytest
from django.contrib.auth import get_user_model

from accounts.exceptions import ApiError
from accounts.tokens import (
    InvalidTokenError,
    RefreshTokenReusedError,
    TokenExpiredError,
    decode_access_token,
    decode_refresh_token,
    generate_access_token,
    generate_refresh_token,
    issue_token_pair,
    revoke_refresh_token,
    rotate_token_pair,
)

User = get_user_model()


def create_user(username: str = "alice", password: str = "Pass1234!word"):
    return User.objects.create_user(
        username=username,
        password=password,
        email=f"{username}@example.com",
        fullname=username.title(),
    )


@pytest.mark.django_db
def test_access_token_carries_identity_claims():
    user = create_user()

    claims = decode_access_token(generate_access_token(user))

    assert claims["sub"] == str(user.pk)
    assert claims["username"] == "alice"
    assert claims["email"] == "alice@example.com"
    assert claims["fullname"] == "Alice"
    assert claims["type"] == "access"
    assert claims["exp"] > claims["iat"]


@pytest.mark.django_db
def test_refresh_token_only_identifies_user():
    user = create_user()

    claims = decode_refresh_token(generate_refresh_token(user))

    assert claims["sub"] == str(user.pk)
    assert claims["type"] == "refresh"
    assert "email" not in claims
    assert claims["jti"]


@pytest.mark.django_db
def test_refresh_tokens_are_unique_within_the_same_second():
    user = create_user()

    assert generate_refresh_token(user) != generate_refresh_token(user)


@pytest.mark.django_db
def test_lifetimes_follow_settings(settings):
    settings.ACCESS_TOKEN_LIFETIME = 60
    settings.REFRESH_TOKEN_LIFETIME = 3600
    user = create_user()

    access = decode_access_token(generate_access_token(user))
    refresh = decode_refresh_token(generate_refresh_token(user))

    assert access["exp"] - access["iat"] == 60
    assert refresh["exp"] - refresh["iat"] == 3600


@pytest.mark.django_db
def test_expired_access_token_rejected(settings):
    settings.ACCESS_TOKEN_LIFETIME = -10
    token = generate_access_token(create_user())

    with pytest.raises(TokenExpiredError):
        decode_access_token(token)


@pytest.mark.django_db
def test_tokens_are_signed_with_separate_secrets():
    user = create_user()

    with pytest.raises(InvalidTokenError):
        decode_refresh_token(generate_access_token(user))
    with pytest.raises(InvalidTokenError):
        decode_access_token(generate_refresh_token(user))


@pytest.mark.django_db
def test_token_type_checked_even_with_shared_secret(settings):
    settings.REFRESH_TOKEN_SECRET = settings.ACCESS_TOKEN_SECRET
    user = create_user()

    with pytest.raises(InvalidTokenError, match="refresh"):
        decode_refresh_token(generate_access_token(user))


def test_tampered_and_empty_tokens_rejected(settings):
    forged = jwt.encode(
        {"sub": "1", "type": "access", "exp": int(time.time()) + 60},
        "not-the-secret",
        algorithm="HS256",
    )

    with pytest.raises(InvalidTokenError):
        decode_access_token(forged)
    with pytest.raises(InvalidTokenError):
        decode_access_token("")
    with pytest.raises(InvalidTokenError):
        decode_access_token("a.b.c")


def test_token_without_expiry_rejected(settings):
    token = jwt.encode({"sub": "1", "type": "access"}, settings.ACCESS_TOKEN_SECRET, algorithm="HS256")

    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


@pytest.mark.django_db
def test_issue_token_pair_persists_refresh_token():
    user = create_user()

    pair = issue_token_pair(user)

    user.refresh_from_db()
    assert user.refresh_token == pair.refresh_token
    assert decode_access_token(pair.access_token)["sub"] == str(user.pk)


@pytest.mark.django_db
def test_issue_token_pair_wraps_failures(monkeypatch):
    user = create_user()

    def boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(user, "save", boom)

    with pytest.raises(ApiError) as excinfo:
        issue_token_pair(user)

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Something went wrong while generating refresh and access token"


@pytest.mark.django_db
def test_revoke_refresh_token_clears_stored_value():
    user = create_user()
    issue_token_pair(user)

    revoke_refresh_token(user)

    user.refresh_from_db()
    assert user.refresh_token == ""


@pytest.mark.django_db
def test_rotate_token_pair_swaps_stored_token():
    user = create_user()
    first = issue_token_pair(user)

    second = rotate_token_pair(user, first.refresh_token)

    user.refresh_from_db()
    assert user.refresh_token == second.refresh_token
    assert second.refresh_token != first.refresh_token


@pytest.mark.django_db
def test_rotate_token_pair_rejects_token_that_is_not_stored():
    user = create_user()
    issue_token_pair(user)

    with pytest.raises(RefreshTokenReusedError):
        rotate_token_pair(user, generate_refresh_token(user))


@pytest.mark.django_db
def test_same_refresh_token_can_only_be_rotated_once():
    user = create_user()
    pair = issue_token_pair(user)
    # Two requests that loaded the user before either one rotated
    first_request_user = User.objects.get(pk=user.pk)
    second_request_user = User.objects.get(pk=user.pk)

    winner = rotate_token_pair(first_request_user, pair.refresh_token)
    with pytest.raises(RefreshTokenReusedError):
        rotate_token_pair(second_request_user, pair.refresh_token)

    user.refresh_from_db()
    assert user.refresh_token == winner.refresh_token
