import logging

import pytest
from django.contrib.auth import get_user_model
from prometheus_client import REGISTRY
from rest_framework.test import APIClient

User = get_user_model()


def auth_event_count(event, outcome):
    return REGISTRY.get_sample_value(
        "accounts_auth_events_total", {"event": event, "outcome": outcome}
    ) or 0.0


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="erin",
        email="erin@example.com",
        password="Pass1234!word",
        fullname="Erin",
    )


def test_health_check(client):
    response = client.get("/health/")

    assert response.status_code == 200
    assert response.content == b"OK"


@pytest.mark.django_db
def test_metrics_endpoint_exposes_auth_counters(client, user):
    client.post("/api/v1/users/login/", {"username": "erin", "password": "Pass1234!word"}, format="json")

    response = client.get("/metrics/")

    assert response.status_code == 200
    assert b"accounts_auth_events_total" in response.content


def test_login_outcomes_are_counted(client, user):
    before_ok = auth_event_count("login", "success")
    before_bad = auth_event_count("login", "invalid_credentials")

    client.post("/api/v1/users/login/", {"username": "erin", "password": "Pass1234!word"}, format="json")
    client.post("/api/v1/users/login/", {"username": "erin", "password": "nope"}, format="json")

    assert auth_event_count("login", "success") == before_ok + 1
    assert auth_event_count("login", "invalid_credentials") == before_bad + 1


def test_rejected_login_logs_without_secrets(client, user, caplog):
    with caplog.at_level(logging.INFO, logger="accounts"):
        response = client.post(
            "/api/v1/users/login/", {"username": "erin", "password": "SuperSecret!42"}, format="json"
        )

    assert response.status_code == 401
    assert caplog.records
    assert all("SuperSecret" not in record.getMessage() for record in caplog.records)
    assert any(getattr(record, "error_code", "") == "INVALID_CREDENTIALS" for record in caplog.records)


def test_account_creation_is_logged(db, caplog):
    with caplog.at_level(logging.INFO, logger="accounts.signals"):
        User.objects.create_user(username="frank", email="frank@example.com", password="x", fullname="Frank")

    assert any(getattr(record, "event", "") == "user_created" for record in caplog.records)
