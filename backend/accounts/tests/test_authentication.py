import pytest
from django.contrib.auth import get_user_model
from rest_framework.exceptions import AuthenticationFailed, NotFound, PermissionDenied, ValidationError
from rest_framework.test import APIRequestFactory

from accounts.authentication import JWTAuthentication
from accounts.exceptions import ApiError, api_exception_handler
from accounts.tokens import generate_access_token, generate_refresh_token

User = get_user_model()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="carol",
        email="carol@example.com",
        password="Pass1234!word",
        fullname="Carol",
    )


def authenticate(request):
    return JWTAuthentication().authenticate(request)


def test_no_token_leaves_request_anonymous():
    request = APIRequestFactory().get("/")

    assert authenticate(request) is None


def test_other_authorization_schemes_are_ignored():
    request = APIRequestFactory().get("/", HTTP_AUTHORIZATION="Token abc123")

    assert authenticate(request) is None


def test_bearer_header_authenticates(user):
    token = generate_access_token(user)
    request = APIRequestFactory().get("/", HTTP_AUTHORIZATION=f"Bearer {token}")

    authenticated_user, claims = authenticate(request)

    assert authenticated_user == user
    assert claims["username"] == "carol"


def test_cookie_takes_precedence_over_header(user, settings):
    other = User.objects.create_user(username="dave", email="dave@example.com", password="x", fullname="Dave")
    factory = APIRequestFactory()
    factory.cookies[settings.ACCESS_TOKEN_COOKIE_NAME] = generate_access_token(user)
    request = factory.get("/", HTTP_AUTHORIZATION=f"Bearer {generate_access_token(other)}")

    authenticated_user, _ = authenticate(request)

    assert authenticated_user == user


def test_malformed_header_rejected():
    request = APIRequestFactory().get("/", HTTP_AUTHORIZATION="Bearer")

    with pytest.raises(AuthenticationFailed):
        authenticate(request)


def test_refresh_token_is_not_an_access_token(user):
    request = APIRequestFactory().get("/", HTTP_AUTHORIZATION=f"Bearer {generate_refresh_token(user)}")

    with pytest.raises(AuthenticationFailed, match="Invalid access token"):
        authenticate(request)


def test_token_for_missing_user_rejected(user):
    token = generate_access_token(user)
    user.delete()
    request = APIRequestFactory().get("/", HTTP_AUTHORIZATION=f"Bearer {token}")

    with pytest.raises(AuthenticationFailed):
        authenticate(request)


def cookie_request(user, settings):
    factory = APIRequestFactory(enforce_csrf_checks=True)
    factory.cookies[settings.ACCESS_TOKEN_COOKIE_NAME] = generate_access_token(user)
    return factory.post("/", {}, format="json")


def test_cookie_token_needs_csrf_when_cookies_are_sent_cross_site(user, settings):
    settings.AUTH_COOKIE_SAMESITE = "None"

    with pytest.raises(PermissionDenied, match="CSRF"):
        authenticate(cookie_request(user, settings))


def test_cookie_token_skips_csrf_with_same_site_cookies(user, settings):
    settings.AUTH_COOKIE_SAMESITE = "Lax"

    authenticated_user, _ = authenticate(cookie_request(user, settings))

    assert authenticated_user == user


def test_bearer_header_never_needs_csrf(user, settings):
    settings.AUTH_COOKIE_SAMESITE = "None"
    request = APIRequestFactory(enforce_csrf_checks=True).post(
        "/", {}, format="json", HTTP_AUTHORIZATION=f"Bearer {generate_access_token(user)}"
    )

    authenticated_user, _ = authenticate(request)

    assert authenticated_user == user


def test_authenticate_header_makes_drf_answer_401():
    assert JWTAuthentication().authenticate_header(APIRequestFactory().get("/")) == "Bearer"


def test_api_error_envelope():
    response = api_exception_handler(ApiError(404, "User does not exist"), {})

    assert response.status_code == 404
    assert response.data == {
        "statusCode": 404,
        "data": None,
        "message": "User does not exist",
        "success": False,
        "errors": [],
    }


def test_api_error_flattens_nested_errors():
    exc = ApiError(400, "Bad input", errors={"new_password": ["Too short.", "Too common."]})

    assert exc.errors == [
        {"field": "new_password", "message": "Too short."},
        {"field": "new_password", "message": "Too common."},
    ]
    assert str(exc) == "400: Bad input"


def test_validation_error_uses_first_message():
    exc = ValidationError({"email": ["Enter a valid email address."], "non_field_errors": ["Mismatch"]})

    response = api_exception_handler(exc, {})

    assert response.status_code == 400
    assert response.data["message"] == "Enter a valid email address."
    assert response.data["errors"] == [
        {"field": "email", "message": "Enter a valid email address."},
        {"message": "Mismatch"},
    ]


def test_drf_exceptions_use_envelope():
    response = api_exception_handler(NotFound("Nothing here"), {})

    assert response.status_code == 404
    assert response.data["message"] == "Nothing here"
    assert response.data["success"] is False


def test_unhandled_exception_becomes_generic_500(caplog):
    response = api_exception_handler(KeyError("secret detail"), {})

    assert response.status_code == 500
    assert response.data["message"] == "Internal server error"
    assert "secret detail" not in str(response.data)
    assert any(getattr(record, "error_code", "") == "INTERNAL_ERROR" for record in caplog.records)
