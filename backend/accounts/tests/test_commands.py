from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command

from accounts.tokens import issue_token_pair

User = get_user_model()


def create_logged_in_user(username):
    user = User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="Pass1234!word",
        fullname=username.title(),
    )
    issue_token_pair(user)
    return user


@pytest.mark.django_db
def test_revokes_all_stored_tokens():
    alice = create_logged_in_user("alice")
    bob = create_logged_in_user("bob")
    out = StringIO()

    call_command("revoke_refresh_tokens", stdout=out)

    alice.refresh_from_db()
    bob.refresh_from_db()
    assert alice.refresh_token == ""
    assert bob.refresh_token == ""
    assert "Revoked refresh tokens for 2 user(s)." in out.getvalue()


@pytest.mark.django_db
def test_revokes_only_selected_users():
    alice = create_logged_in_user("alice")
    bob = create_logged_in_user("bob")

    call_command("revoke_refresh_tokens", "--username", "ALICE", stdout=StringIO())

    alice.refresh_from_db()
    bob.refresh_from_db()
    assert alice.refresh_token == ""
    assert bob.refresh_token != ""


@pytest.mark.django_db
def test_dry_run_changes_nothing():
    alice = create_logged_in_user("alice")
    out = StringIO()

    call_command("revoke_refresh_tokens", "--dry-run", stdout=out)

    alice.refresh_from_db()
    assert alice.refresh_token != ""
    assert "Would revoke refresh tokens for 1 user(s)." in out.getvalue()


@pytest.mark.django_db
def test_unknown_username_fails():
    create_logged_in_user("alice")

    with pytest.raises(CommandError, match="ghost"):
        call_command("revoke_refresh_tokens", "--username", "ghost", stdout=StringIO())


@pytest.mark.django_db
def test_nothing_to_revoke():
    User.objects.create_user(username="idle", email="idle@example.com", password="x", fullname="Idle")
    out = StringIO()

    call_command("revoke_refresh_tokens", stdout=out)

    assert "No stored refresh tokens matched" in out.getvalue()
