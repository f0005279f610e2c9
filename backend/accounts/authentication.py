import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import authentication
from rest_framework.exceptions import AuthenticationFailed, PermissionDenied

from .tokens import TokenError, decode_access_token

logger = logging.getLogger(__name__)


class JWTAuthentication(authentication.BaseAuthentication):
    """
    Authenticate requests with an access token.

    The token is read from the access-token cookie first, then from an
    ``Authorization: Bearer <token>`` header. Requests without a token are
    left anonymous so public endpoints keep working.
    """

    keyword = "Bearer"

    def authenticate(self, request):
        token = self.get_raw_token(request)
        if not token:
            return None

        try:
            claims = decode_access_token(token)
        except TokenError as exc:
            logger.info("Rejected access token", extra={"error_code": "INVALID_ACCESS_TOKEN", "reason": str(exc)})
            raise AuthenticationFailed("Invalid access token")

        User = get_user_model()
        try:
            user = User.objects.get(pk=claims["sub"])
        except (User.DoesNotExist, ValueError):
            raise AuthenticationFailed("Invalid access token")

        if not user.is_active:
            raise AuthenticationFailed("Invalid access token")

        if request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE_NAME) and not self.cookie_blocks_cross_site():
            self.enforce_csrf(request)

        return user, claims

    def cookie_blocks_cross_site(self):
        return str(settings.AUTH_COOKIE_SAMESITE).lower() in ("lax", "strict")

    def enforce_csrf(self, request):
        """
        Browsers send SameSite=None cookies on cross-site requests, so a
        cookie-borne token must come with a valid CSRF token.
        """
        def dummy_get_response(request):
            return None

        check = authentication.CSRFCheck(dummy_get_response)
        check.process_request(request)
        reason = check.process_view(request, None, (), {})
        if reason:
            raise PermissionDenied(f"CSRF Failed: {reason}")

    def get_raw_token(self, request):
        token = request.COOKIES.get(settings.ACCESS_TOKEN_COOKIE_NAME)
        if token:
            return token

        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise AuthenticationFailed("Invalid authorization header")
        try:
            return header[1].decode()
        except UnicodeError:
            raise AuthenticationFailed("Invalid authorization header")

    def authenticate_header(self, request):
        return self.keyword
