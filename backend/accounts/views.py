import logging

from django.conf import settings
from django.contrib.auth.models import update_last_login
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated

from .exceptions import ApiError
from .metrics import record_auth_event
from .models import User
from .responses import api_response
from .serializers import (
    AccountUpdateSerializer,
    AvatarSerializer,
    CoverImageSerializer,
    PasswordChangeSerializer,
    UserLoginSerializer,
    UserProfileSerializer,
    UserRegistrationSerializer,
)
from .tokens import (
    RefreshTokenReusedError,
    TokenError,
    decode_refresh_token,
    issue_token_pair,
    revoke_refresh_token,
    rotate_token_pair,
)
from .uploads import AVATAR_FOLDER, COVER_IMAGE_FOLDER, UploadError, delete_stored_media, store_image

logger = logging.getLogger(__name__)


def _cookie_options():
    return {
        'httponly': True,
        'secure': settings.AUTH_COOKIE_SECURE,
        'samesite': settings.AUTH_COOKIE_SAMESITE,
        'path': settings.AUTH_COOKIE_PATH,
    }


def set_auth_cookies(response, token_pair):
    options = _cookie_options()
    response.set_cookie(
        settings.ACCESS_TOKEN_COOKIE_NAME,
        token_pair.access_token,
        max_age=settings.ACCESS_TOKEN_LIFETIME,
        **options,
    )
    response.set_cookie(
        settings.REFRESH_TOKEN_COOKIE_NAME,
        token_pair.refresh_token,
        max_age=settings.REFRESH_TOKEN_LIFETIME,
        **options,
    )
    return response


def clear_auth_cookies(response):
    for name in (settings.ACCESS_TOKEN_COOKIE_NAME, settings.REFRESH_TOKEN_COOKIE_NAME):
        response.delete_cookie(name, path=settings.AUTH_COOKIE_PATH, samesite=settings.AUTH_COOKIE_SAMESITE)
    return response


def _token_payload(token_pair):
    return {
        'access_token': token_pair.access_token,
        'refresh_token': token_pair.refresh_token,
    }


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@parser_classes([MultiPartParser, FormParser])
def register_view(request):
    """
    User registration endpoint
    """
    serializer = UserRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    username = serializer.validated_data['username']
    email = serializer.validated_data['email']

    if User.objects.filter(Q(username=username) | Q(email=email)).exists():
        record_auth_event('register', 'conflict')
        raise ApiError(status.HTTP_409_CONFLICT, 'User with this email or username already exists')

    avatar_file = request.FILES.get('avatar')
    if not avatar_file:
        raise ApiError(status.HTTP_400_BAD_REQUEST, 'Avatar file is required')
    cover_image_file = request.FILES.get('cover_image')

    stored_urls = []
    try:
        avatar_url = store_image(avatar_file, AVATAR_FOLDER, request)
        stored_urls.append(avatar_url)
    except UploadError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, 'Error while uploading avatar', errors=[exc.message])

    cover_image_url = ''
    if cover_image_file:
        try:
            cover_image_url = store_image(cover_image_file, COVER_IMAGE_FOLDER, request)
            stored_urls.append(cover_image_url)
        except UploadError as exc:
            _discard_media(stored_urls)
            raise ApiError(status.HTTP_400_BAD_REQUEST, 'Error while uploading cover image', errors=[exc.message])

    try:
        with transaction.atomic():
            user = serializer.save(avatar=avatar_url, cover_image=cover_image_url)
    except IntegrityError:
        _discard_media(stored_urls)
        record_auth_event('register', 'conflict')
        raise ApiError(status.HTTP_409_CONFLICT, 'User with this email or username already exists')
    except Exception:
        _discard_media(stored_urls)
        logger.exception('User registration failed', extra={'error_code': 'REGISTRATION_FAILED'})
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, 'Something went wrong while registering the user')

    record_auth_event('register')
    logger.info('User registered', extra={'user_id': user.pk})
    return api_response(
        status.HTTP_201_CREATED,
        UserProfileSerializer(user).data,
        'User registered successfully',
    )


def _discard_media(urls):
    for url in urls:
        delete_stored_media(url)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    """
    User login endpoint, accepting username or email
    """
    serializer = UserLoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    user = User.objects.get_by_username_or_email(
        username=data.get('username'),
        email=data.get('email'),
    )
    if user is None:
        record_auth_event('login', 'unknown_user')
        raise ApiError(status.HTTP_404_NOT_FOUND, 'User does not exist')

    if not user.is_active or not user.check_password(data['password']):
        record_auth_event('login', 'invalid_credentials')
        logger.info('Login rejected', extra={'error_code': 'INVALID_CREDENTIALS', 'user_id': user.pk})
        raise ApiError(status.HTTP_401_UNAUTHORIZED, 'Invalid user credentials')

    token_pair = issue_token_pair(user)
    update_last_login(None, user)

    record_auth_event('login')
    response = api_response(
        status.HTTP_200_OK,
        {'user': UserProfileSerializer(user).data, **_token_payload(token_pair)},
        'User logged in successfully',
    )
    return set_auth_cookies(response, token_pair)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """
    User logout endpoint
    """
    revoke_refresh_token(request.user)
    record_auth_event('logout')

    response = api_response(status.HTTP_200_OK, {}, 'User logged out successfully')
    return clear_auth_cookies(response)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def refresh_token_view(request):
    """
    Exchange a valid refresh token for a new access/refresh pair
    """
    body = request.data if isinstance(request.data, dict) else {}
    incoming_token = request.COOKIES.get(settings.REFRESH_TOKEN_COOKIE_NAME) or body.get('refresh_token')
    if not incoming_token or not isinstance(incoming_token, str):
        record_auth_event('refresh', 'missing_token')
        raise ApiError(status.HTTP_401_UNAUTHORIZED, 'Unauthorized request')

    try:
        claims = decode_refresh_token(incoming_token)
    except TokenError as exc:
        record_auth_event('refresh', 'invalid_token')
        logger.info('Refresh token rejected', extra={'error_code': 'INVALID_REFRESH_TOKEN', 'reason': str(exc)})
        raise ApiError(status.HTTP_401_UNAUTHORIZED, 'Invalid refresh token')

    try:
        user = User.objects.filter(pk=claims['sub'], is_active=True).first()
    except ValueError:
        user = None
    if user is None:
        record_auth_event('refresh', 'invalid_token')
        raise ApiError(status.HTTP_401_UNAUTHORIZED, 'Invalid refresh token')

    try:
        token_pair = rotate_token_pair(user, incoming_token)
    except RefreshTokenReusedError:
        record_auth_event('refresh', 'reused_token')
        logger.warning('Stale refresh token presented', extra={'error_code': 'REFRESH_TOKEN_REUSED', 'user_id': user.pk})
        raise ApiError(status.HTTP_401_UNAUTHORIZED, 'Refresh token is expired or used')

    record_auth_event('refresh')
    response = api_response(status.HTTP_200_OK, _token_payload(token_pair), 'Access token refreshed')
    return set_auth_cookies(response, token_pair)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    """
    Change user password

    Issues a fresh token pair; refresh tokens handed out before the change
    stop working.
    """
    serializer = PasswordChangeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = request.user

    if not user.check_password(serializer.validated_data['old_password']):
        record_auth_event('change_password', 'invalid_old_password')
        raise ApiError(status.HTTP_400_BAD_REQUEST, 'Invalid old password')

    new_password = serializer.validated_data['new_password']
    try:
        validate_password(new_password, user=user)
    except DjangoValidationError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, exc.messages[0], errors={'new_password': exc.messages})

    user.set_password(new_password)
    user.save(update_fields=['password', 'updated_at'])
    token_pair = issue_token_pair(user)

    record_auth_event('change_password')
    logger.info('Password changed', extra={'user_id': user.pk})
    response = api_response(status.HTTP_200_OK, _token_payload(token_pair), 'Password changed successfully')
    return set_auth_cookies(response, token_pair)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def current_user_view(request):
    """
    Get the authenticated user's profile
    """
    return api_response(
        status.HTTP_200_OK,
        UserProfileSerializer(request.user).data,
        'Current user fetched successfully',
    )


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def update_account_view(request):
    """
    Update full name and email
    """
    serializer = AccountUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = request.user
    email = serializer.validated_data['email']

    if User.objects.filter(email=email).exclude(pk=user.pk).exists():
        raise ApiError(status.HTTP_409_CONFLICT, 'User with this email already exists')

    previous = (user.fullname, user.email)
    user.fullname = serializer.validated_data['fullname']
    user.email = email
    try:
        with transaction.atomic():
            user.save(update_fields=['fullname', 'email', 'updated_at'])
    except IntegrityError:
        user.fullname, user.email = previous
        raise ApiError(status.HTTP_409_CONFLICT, 'User with this email already exists')

    return api_response(
        status.HTTP_200_OK,
        UserProfileSerializer(user).data,
        'Account details updated successfully',
    )


def _replace_image(request, serializer_class, field, folder, label):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = request.user

    try:
        new_url = store_image(serializer.validated_data[field], folder, request)
    except UploadError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, f'Error while uploading {label}', errors=[exc.message])

    previous_url = getattr(user, field)
    setattr(user, field, new_url)
    try:
        user.save(update_fields=[field, 'updated_at'])
    except Exception:
        setattr(user, field, previous_url)
        _discard_media([new_url])
        raise

    if previous_url:
        delete_stored_media(previous_url)
    return user


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def update_avatar_view(request):
    """
    Replace the user's avatar image
    """
    user = _replace_image(request, AvatarSerializer, 'avatar', AVATAR_FOLDER, 'avatar')
    return api_response(
        status.HTTP_200_OK,
        UserProfileSerializer(user).data,
        'Avatar image updated successfully',
    )


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def update_cover_image_view(request):
    """
    Replace the user's cover image
    """
    user = _replace_image(request, CoverImageSerializer, 'cover_image', COVER_IMAGE_FOLDER, 'cover image')
    return api_response(
        status.HTTP_200_OK,
        UserProfileSerializer(user).data,
        'Cover image updated successfully',
    )
