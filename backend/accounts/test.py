"""
Test suite for the accounts app.

This module contains tests for the user model, serializers, and every API
endpoint: registration, login, logout, token refresh, password change,
profile lookup and updates, and avatar/cover image replacement.
"""
import base64
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt

from django.conf import settings
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from .serializers import (
    UserRegistrationSerializer,
    UserLoginSerializer,
    UserProfileSerializer,
    PasswordChangeSerializer,
    AccountUpdateSerializer,
)
from .tokens import generate_refresh_token, issue_token_pair, rotate_token_pair
from .uploads import _storage_name

User = get_user_model()

PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


def make_image(name="avatar.png"):
    return SimpleUploadedFile(name, PNG_BYTES, content_type="image/png")


class UserModelTest(TestCase):
    """Test cases for the User model."""

    def setUp(self):
        self.user_data = {
            'username': 'TestUser',
            'email': 'Test@Example.com',
            'password': 'testpass123',
            'fullname': 'Test User',
            'avatar': 'http://testserver/media/avatars/a.png',
        }

    def test_create_user_normalises_identifiers(self):
        """Username and email are stored lower-cased."""
        user = User.objects.create_user(**self.user_data)

        self.assertEqual(user.username, 'testuser')
        self.assertEqual(user.email, 'test@example.com')
        self.assertEqual(user.fullname, 'Test User')
        self.assertEqual(user.cover_image, '')
        self.assertEqual(user.refresh_token, '')
        self.assertTrue(user.is_active)
        self.assertTrue(user.check_password('testpass123'))

    def test_create_user_unique_email(self):
        """Email uniqueness holds regardless of case."""
        User.objects.create_user(**self.user_data)

        duplicate = self.user_data.copy()
        duplicate['username'] = 'anotheruser'
        duplicate['email'] = 'TEST@example.com'

        with self.assertRaises(Exception):  # IntegrityError expected
            User.objects.create_user(**duplicate)

    def test_create_user_unique_username(self):
        User.objects.create_user(**self.user_data)

        duplicate = self.user_data.copy()
        duplicate['email'] = 'another@example.com'

        with self.assertRaises(Exception):  # IntegrityError expected
            User.objects.create_user(**duplicate)

    def test_get_by_username_or_email(self):
        user = User.objects.create_user(**self.user_data)

        self.assertEqual(User.objects.get_by_username_or_email(username='TESTUSER'), user)
        self.assertEqual(User.objects.get_by_username_or_email(email='test@example.com'), user)
        self.assertEqual(User.objects.get_by_username_or_email(username='nobody', email='test@example.com'), user)
        self.assertIsNone(User.objects.get_by_username_or_email(username='nobody'))
        self.assertIsNone(User.objects.get_by_username_or_email())

    def test_user_string_representation(self):
        user = User.objects.create_user(**self.user_data)
        self.assertEqual(str(user), 'testuser')


class UserRegistrationSerializerTest(TestCase):
    """Test cases for UserRegistrationSerializer."""

    def setUp(self):
        self.valid_data = {
            'username': 'NewUser',
            'email': 'newuser@example.com',
            'password': 'StrongPass123!',
            'fullname': 'New User',
        }

    def test_valid_registration_data(self):
        serializer = UserRegistrationSerializer(data=self.valid_data)
        self.assertTrue(serializer.is_valid())

        user = serializer.save(avatar='http://testserver/media/avatars/a.png')
        self.assertEqual(user.username, 'newuser')
        self.assertEqual(user.avatar, 'http://testserver/media/avatars/a.png')
        self.assertTrue(user.check_password('StrongPass123!'))

    def test_blank_field_rejected(self):
        invalid_data = self.valid_data.copy()
        invalid_data['fullname'] = '   '

        serializer = UserRegistrationSerializer(data=invalid_data)
        self.assertFalse(serializer.is_valid())
        self.assertIn('All fields are required', str(serializer.errors))

    def test_missing_field_rejected(self):
        invalid_data = self.valid_data.copy()
        del invalid_data['email']

        serializer = UserRegistrationSerializer(data=invalid_data)
        self.assertFalse(serializer.is_valid())
        self.assertIn('email', serializer.errors)

    def test_weak_password_validation(self):
        invalid_data = self.valid_data.copy()
        invalid_data['password'] = '123'

        serializer = UserRegistrationSerializer(data=invalid_data)
        self.assertFalse(serializer.is_valid())
        self.assertIn('password', serializer.errors)

    def test_invalid_username_characters(self):
        invalid_data = self.valid_data.copy()
        invalid_data['username'] = 'bad name!'

        serializer = UserRegistrationSerializer(data=invalid_data)
        self.assertFalse(serializer.is_valid())
        self.assertIn('username', serializer.errors)


class UserLoginSerializerTest(TestCase):
    """Test cases for UserLoginSerializer."""

    def test_username_or_email_required(self):
        serializer = UserLoginSerializer(data={'password': 'whatever123'})
        self.assertFalse(serializer.is_valid())
        self.assertIn('Username or email is required', str(serializer.errors))

    def test_email_only_is_enough(self):
        serializer = UserLoginSerializer(data={'email': 'a@example.com', 'password': 'whatever123'})
        self.assertTrue(serializer.is_valid())

    def test_missing_password(self):
        serializer = UserLoginSerializer(data={'username': 'loginuser'})
        self.assertFalse(serializer.is_valid())
        self.assertIn('password', serializer.errors)


class UserProfileSerializerTest(TestCase):
    """Test cases for UserProfileSerializer."""

    def test_profile_hides_credentials(self):
        user = User.objects.create_user(
            username='profileuser',
            email='profile@example.com',
            password='profilepass123',
            fullname='Profile User',
        )
        user.refresh_token = 'stored-token'
        user.save()

        data = UserProfileSerializer(user).data

        self.assertEqual(data['username'], 'profileuser')
        self.assertEqual(data['fullname'], 'Profile User')
        self.assertIn('avatar', data)
        self.assertIn('cover_image', data)
        self.assertNotIn('password', data)
        self.assertNotIn('refresh_token', data)


class PasswordChangeSerializerTest(TestCase):
    """Test cases for PasswordChangeSerializer."""

    def test_new_password_mismatch(self):
        serializer = PasswordChangeSerializer(data={
            'old_password': 'oldpass123',
            'new_password': 'NewStrongPass123!',
            'confirm_password': 'DifferentNewPass123!',
        })
        self.assertFalse(serializer.is_valid())
        self.assertIn('New password and confirm password do not match', str(serializer.errors))

    def test_all_fields_required(self):
        serializer = PasswordChangeSerializer(data={'old_password': 'oldpass123'})
        self.assertFalse(serializer.is_valid())
        self.assertIn('new_password', serializer.errors)
        self.assertIn('confirm_password', serializer.errors)


class AccountUpdateSerializerTest(TestCase):
    """Test cases for AccountUpdateSerializer."""

    def test_email_lowercased(self):
        serializer = AccountUpdateSerializer(data={'fullname': 'X', 'email': 'New@Example.com'})
        self.assertTrue(serializer.is_valid())
        self.assertEqual(serializer.validated_data['email'], 'new@example.com')

    def test_fullname_required(self):
        serializer = AccountUpdateSerializer(data={'email': 'new@example.com'})
        self.assertFalse(serializer.is_valid())
        self.assertIn('All fields are required', str(serializer.errors))


class MediaTestMixin:
    """Route uploads into a throwaway MEDIA_ROOT."""

    def setUp(self):
        self._temp_media = tempfile.mkdtemp()
        self.override = override_settings(MEDIA_ROOT=self._temp_media)
        self.override.enable()
        super().setUp()

    def tearDown(self):
        self.override.disable()
        shutil.rmtree(self._temp_media, ignore_errors=True)
        super().tearDown()


class RegistrationViewTest(MediaTestMixin, APITestCase):
    """Test cases for the registration endpoint."""

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.url = reverse('accounts:register')
        self.data = {
            'fullname': 'New Registration',
            'email': 'newreg@example.com',
            'username': 'NewRegUser',
            'password': 'StrongRegPass123!',
        }

    def test_user_registration_success(self):
        payload = dict(self.data, avatar=make_image(), cover_image=make_image('cover.png'))

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.data
        self.assertTrue(body['success'])
        self.assertEqual(body['statusCode'], 201)
        self.assertEqual(body['message'], 'User registered successfully')
        self.assertEqual(body['data']['username'], 'newreguser')
        self.assertNotIn('password', body['data'])
        self.assertNotIn('refresh_token', body['data'])

        user = User.objects.get(username='newreguser')
        self.assertTrue(user.avatar.startswith('http://testserver/media/avatars/'))
        self.assertTrue(user.cover_image.startswith('http://testserver/media/cover_images/'))
        self.assertTrue(default_storage.exists(_storage_name(user.avatar)))

    def test_cover_image_is_optional(self):
        payload = dict(self.data, avatar=make_image())

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['cover_image'], '')

    def test_avatar_is_required(self):
        response = self.client.post(self.url, self.data, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Avatar file is required')
        self.assertFalse(User.objects.filter(username='newreguser').exists())

    def test_avatar_must_be_an_image(self):
        text_file = SimpleUploadedFile('avatar.png', b'definitely not an image', content_type='image/png')
        payload = dict(self.data, avatar=text_file)

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Error while uploading avatar')
        self.assertEqual(response.data['errors'][0]['message'], 'Uploaded file must be an image')

    def test_bad_cover_image_discards_stored_avatar(self):
        bad_cover = SimpleUploadedFile('cover.png', b'plain text', content_type='image/png')
        payload = dict(self.data, avatar=make_image(), cover_image=bad_cover)

        with patch('accounts.views.delete_stored_media') as delete_mock:
            response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Error while uploading cover image')
        self.assertEqual(delete_mock.call_count, 1)

    def test_blank_fields_rejected(self):
        payload = dict(self.data, fullname='  ', avatar=make_image())

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'All fields are required')
        self.assertEqual(response.data['errors'][0]['field'], 'fullname')

    def test_duplicate_username_conflicts(self):
        User.objects.create_user(username='newreguser', email='other@example.com', password='x')
        payload = dict(self.data, avatar=make_image())

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['message'], 'User with this email or username already exists')

    def test_duplicate_email_conflicts(self):
        User.objects.create_user(username='someoneelse', email='NEWREG@example.com', password='x')
        payload = dict(self.data, avatar=make_image())

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_registration_ignores_stale_access_cookie(self):
        self.client.cookies[settings.ACCESS_TOKEN_COOKIE_NAME] = 'garbage'
        payload = dict(self.data, avatar=make_image())

        response = self.client.post(self.url, payload, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)


class AuthenticatedViewsBase(MediaTestMixin, APITestCase):
    """Shared fixtures: one registered user and a logged-in client."""

    password = 'ViewPass123!'

    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.user = User.objects.create_user(
            username='viewuser',
            email='view@example.com',
            password=self.password,
            fullname='View User',
            avatar='http://elsewhere.example.com/avatar.png',
        )

    def login(self, **credentials):
        data = credentials or {'username': 'viewuser', 'password': self.password}
        return self.client.post(reverse('accounts:login'), data, format='json')


class LoginViewTest(AuthenticatedViewsBase):

    def test_login_with_username(self):
        response = self.login()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['message'], 'User logged in successfully')
        data = response.data['data']
        self.assertEqual(data['user']['username'], 'viewuser')
        self.assertIn('access_token', data)
        self.assertIn('refresh_token', data)

        self.user.refresh_from_db()
        self.assertEqual(self.user.refresh_token, data['refresh_token'])
        self.assertIsNotNone(self.user.last_login)

    def test_login_sets_http_only_cookies(self):
        response = self.login()

        access_cookie = response.cookies[settings.ACCESS_TOKEN_COOKIE_NAME]
        refresh_cookie = response.cookies[settings.REFRESH_TOKEN_COOKIE_NAME]
        self.assertEqual(access_cookie.value, response.data['data']['access_token'])
        self.assertEqual(refresh_cookie.value, response.data['data']['refresh_token'])
        self.assertTrue(access_cookie['httponly'])
        self.assertTrue(refresh_cookie['httponly'])
        self.assertTrue(refresh_cookie['secure'])

    def test_login_with_email(self):
        response = self.login(email='VIEW@example.com', password=self.password)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_login_requires_identifier(self):
        response = self.login(password=self.password)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Username or email is required')

    def test_login_unknown_user(self):
        response = self.login(username='ghost', password=self.password)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['message'], 'User does not exist')

    def test_login_wrong_password(self):
        response = self.login(username='viewuser', password='wrongpassword')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Invalid user credentials')
        self.assertIsNone(response.data['data'])

    def test_inactive_user_cannot_login(self):
        self.user.is_active = False
        self.user.save()

        response = self.login()

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class LogoutViewTest(AuthenticatedViewsBase):

    def test_logout_revokes_refresh_token_and_clears_cookies(self):
        self.login()

        response = self.client.post(reverse('accounts:logout'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'User logged out successfully')
        self.assertEqual(response.cookies[settings.ACCESS_TOKEN_COOKIE_NAME].value, '')
        self.assertEqual(response.cookies[settings.REFRESH_TOKEN_COOKIE_NAME].value, '')
        self.user.refresh_from_db()
        self.assertEqual(self.user.refresh_token, '')

    def test_logout_unauthenticated(self):
        response = self.client.post(reverse('accounts:logout'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_logout_with_bearer_header(self):
        access_token = self.login().data['data']['access_token']
        self.client.cookies.clear()
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + access_token)

        response = self.client.post(reverse('accounts:logout'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)


class RefreshTokenViewTest(AuthenticatedViewsBase):

    def test_refresh_from_cookie_rotates_tokens(self):
        old_refresh = self.login().data['data']['refresh_token']

        response = self.client.post(reverse('accounts:refresh_token'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Access token refreshed')
        new_refresh = response.data['data']['refresh_token']
        self.assertNotEqual(new_refresh, old_refresh)
        self.assertEqual(response.cookies[settings.REFRESH_TOKEN_COOKIE_NAME].value, new_refresh)
        self.user.refresh_from_db()
        self.assertEqual(self.user.refresh_token, new_refresh)

    def test_refresh_from_body(self):
        old_refresh = self.login().data['data']['refresh_token']
        self.client.cookies.clear()

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': old_refresh}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_used_refresh_token_rejected(self):
        old_refresh = self.login().data['data']['refresh_token']
        self.client.post(reverse('accounts:refresh_token'))
        self.client.cookies.clear()

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': old_refresh}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Refresh token is expired or used')

    def test_refresh_after_logout_rejected(self):
        refresh = self.login().data['data']['refresh_token']
        self.client.post(reverse('accounts:logout'))

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': refresh}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Refresh token is expired or used')

    def test_missing_refresh_token(self):
        response = self.client.post(reverse('accounts:refresh_token'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Unauthorized request')

    def test_malformed_refresh_token(self):
        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': 'not-a-jwt'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid refresh token')

    def test_access_token_cannot_be_used_to_refresh(self):
        access = self.login().data['data']['access_token']
        self.client.cookies.clear()

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': access}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid refresh token')

    def test_refresh_token_for_deleted_user(self):
        token = generate_refresh_token(self.user)
        self.user.delete()

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': token}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid refresh token')

    def test_refresh_works_with_expired_access_cookie(self):
        self.login()
        self.client.cookies[settings.ACCESS_TOKEN_COOKIE_NAME] = 'expired-or-garbage'

        response = self.client.post(reverse('accounts:refresh_token'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_same_refresh_token_redeemed_only_once_under_concurrency(self):
        refresh = self.login().data['data']['refresh_token']
        self.client.cookies.clear()
        url = reverse('accounts:refresh_token')
        competing = {}

        def rotate_after_competing_request(user, presented_token):
            # A second request with the same token lands before this one rotates
            if not competing:
                competing['started'] = True
                competing['response'] = APIClient().post(url, {'refresh_token': refresh}, format='json')
            return rotate_token_pair(user, presented_token)

        with patch('accounts.views.rotate_token_pair', side_effect=rotate_after_competing_request):
            response = self.client.post(url, {'refresh_token': refresh}, format='json')

        self.assertEqual(competing['response'].status_code, status.HTTP_200_OK)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Refresh token is expired or used')
        self.user.refresh_from_db()
        self.assertEqual(self.user.refresh_token, competing['response'].data['data']['refresh_token'])

    def test_refresh_with_non_object_body(self):
        response = self.client.post(reverse('accounts:refresh_token'), ['refresh_token'], format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Unauthorized request')

    def test_refresh_token_with_non_numeric_subject(self):
        issued_at = datetime.now(timezone.utc)
        token = jwt.encode(
            {'sub': 'not-a-number', 'type': 'refresh', 'iat': issued_at, 'exp': issued_at + timedelta(minutes=5)},
            settings.REFRESH_TOKEN_SECRET,
            algorithm='HS256',
        )

        response = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': token}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid refresh token')


class ChangePasswordViewTest(AuthenticatedViewsBase):

    def setUp(self):
        super().setUp()
        self.url = reverse('accounts:change_password')

    def test_change_password_success(self):
        old_refresh = self.login().data['data']['refresh_token']

        response = self.client.post(self.url, {
            'old_password': self.password,
            'new_password': 'BrandNewPass456!',
            'confirm_password': 'BrandNewPass456!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Password changed successfully')
        self.assertIn('access_token', response.data['data'])
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password('BrandNewPass456!'))
        self.assertNotEqual(self.user.refresh_token, old_refresh)

        self.client.cookies.clear()
        stale = self.client.post(reverse('accounts:refresh_token'), {'refresh_token': old_refresh}, format='json')
        self.assertEqual(stale.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_mismatched_confirmation_is_an_error_status(self):
        self.login()

        response = self.client.post(self.url, {
            'old_password': self.password,
            'new_password': 'BrandNewPass456!',
            'confirm_password': 'SomethingElse789!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'New password and confirm password do not match')
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password(self.password))

    def test_wrong_old_password(self):
        self.login()

        response = self.client.post(self.url, {
            'old_password': 'not-my-password',
            'new_password': 'BrandNewPass456!',
            'confirm_password': 'BrandNewPass456!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid old password')

    def test_weak_new_password(self):
        self.login()

        response = self.client.post(self.url, {
            'old_password': self.password,
            'new_password': '12345678',
            'confirm_password': '12345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['errors'][0]['field'], 'new_password')

    def test_requires_authentication(self):
        response = self.client.post(self.url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProfileViewsTest(AuthenticatedViewsBase):

    def test_current_user(self):
        self.login()

        response = self.client.get(reverse('accounts:current_user'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Current user fetched successfully')
        self.assertEqual(response.data['data']['email'], 'view@example.com')
        self.assertNotIn('password', response.data['data'])

    def test_current_user_with_invalid_token(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = self.client.get(reverse('accounts:current_user'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid access token')

    def test_update_account(self):
        self.login()

        response = self.client.patch(reverse('accounts:update_account'), {
            'fullname': 'Renamed User',
            'email': 'Renamed@Example.com',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Account details updated successfully')
        self.user.refresh_from_db()
        self.assertEqual(self.user.fullname, 'Renamed User')
        self.assertEqual(self.user.email, 'renamed@example.com')

    def test_update_account_requires_all_fields(self):
        self.login()

        response = self.client.patch(reverse('accounts:update_account'), {'fullname': 'Only Name'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'All fields are required')

    def test_update_account_email_taken(self):
        User.objects.create_user(username='other', email='taken@example.com', password='x')
        self.login()

        response = self.client.patch(reverse('accounts:update_account'), {
            'fullname': 'View User',
            'email': 'taken@example.com',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_update_account_email_claimed_after_availability_check(self):
        User.objects.create_user(username='other', email='taken@example.com', password='x')
        self.login()

        with patch('django.db.models.query.QuerySet.exists', return_value=False):
            response = self.client.patch(reverse('accounts:update_account'), {
                'fullname': 'View User',
                'email': 'taken@example.com',
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['message'], 'User with this email already exists')
        self.user.refresh_from_db()
        self.assertEqual(self.user.email, 'view@example.com')

    def test_update_account_keeping_own_email(self):
        self.login()

        response = self.client.patch(reverse('accounts:update_account'), {
            'fullname': 'Same Email',
            'email': 'view@example.com',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)


class ImageUpdateViewsTest(AuthenticatedViewsBase):

    def test_update_avatar_replaces_and_deletes_previous_file(self):
        self.login()
        first = self.client.patch(reverse('accounts:update_avatar'), {'avatar': make_image()}, format='multipart')
        self.assertEqual(first.status_code, status.HTTP_200_OK)
        first_url = first.data['data']['avatar']
        self.assertTrue(default_storage.exists(_storage_name(first_url)))

        second = self.client.patch(reverse('accounts:update_avatar'), {'avatar': make_image()}, format='multipart')

        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data['message'], 'Avatar image updated successfully')
        self.assertNotEqual(second.data['data']['avatar'], first_url)
        self.assertFalse(default_storage.exists(_storage_name(first_url)))

    def test_update_avatar_missing_file(self):
        self.login()

        response = self.client.patch(reverse('accounts:update_avatar'), {}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Avatar file is missing')

    def test_update_avatar_hands_previous_url_to_cleanup(self):
        self.login()

        with patch('accounts.views.delete_stored_media', return_value=False) as delete_mock:
            response = self.client.patch(reverse('accounts:update_avatar'), {'avatar': make_image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        delete_mock.assert_called_once_with('http://elsewhere.example.com/avatar.png')

    def test_failed_save_discards_new_avatar_file(self):
        self.login()

        with patch.object(User, 'save', side_effect=DatabaseError('write failed')):
            response = self.client.patch(reverse('accounts:update_avatar'), {'avatar': make_image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(default_storage.listdir('avatars')[1], [])
        self.user.refresh_from_db()
        self.assertEqual(self.user.avatar, 'http://elsewhere.example.com/avatar.png')

    def test_update_cover_image(self):
        self.login()

        response = self.client.patch(
            reverse('accounts:update_cover_image'), {'cover_image': make_image('cover.png')}, format='multipart',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Cover image updated successfully')
        self.user.refresh_from_db()
        self.assertTrue(self.user.cover_image.startswith('http://testserver/media/cover_images/'))

    def test_update_cover_image_missing_file(self):
        self.login()

        response = self.client.patch(reverse('accounts:update_cover_image'), {}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Cover image file is missing')

    def test_update_cover_image_rejects_non_image(self):
        self.login()
        text_file = SimpleUploadedFile('cover.png', b'plain text', content_type='image/png')

        response = self.client.patch(reverse('accounts:update_cover_image'), {'cover_image': text_file}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Error while uploading cover image')


class AccountSecurityTest(APITestCase):
    """Security-focused test cases for account functionality."""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            username='securityuser',
            email='security@example.com',
            password='SecurityPass123!',
            fullname='Security User',
        )

    def test_unauthorized_access_to_protected_endpoints(self):
        protected_endpoints = [
            ('accounts:current_user', 'get'),
            ('accounts:update_account', 'patch'),
            ('accounts:change_password', 'post'),
            ('accounts:logout', 'post'),
            ('accounts:update_avatar', 'patch'),
            ('accounts:update_cover_image', 'patch'),
        ]

        for endpoint_name, method in protected_endpoints:
            with self.subTest(endpoint=endpoint_name):
                response = getattr(self.client, method)(reverse(endpoint_name))
                self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
                self.assertFalse(response.data['success'])
                self.assertEqual(response.data['statusCode'], 401)

    def test_token_of_inactive_user_rejected(self):
        pair = issue_token_pair(self.user)
        self.user.is_active = False
        self.user.save()
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + pair.access_token)

        response = self.client.get(reverse('accounts:current_user'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_method_not_allowed_uses_envelope(self):
        pair = issue_token_pair(self.user)
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + pair.access_token)

        response = self.client.post(reverse('accounts:current_user'))

        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertFalse(response.data['success'])

    def test_unexpected_error_is_not_leaked(self):
        pair = issue_token_pair(self.user)
        self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + pair.access_token)

        with patch('accounts.views.UserProfileSerializer', side_effect=RuntimeError('db exploded')):
            response = self.client.get(reverse('accounts:current_user'))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['message'], 'Internal server error')
        self.assertNotIn('db exploded', str(response.data))
