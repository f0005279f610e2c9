"""
URL configuration for the accounts app.

All routes are exposed under '/api/v1/users/' as configured in backend/urls.py.
"""

from django.urls import path
from . import views

app_name = 'accounts'

urlpatterns = [
    # Public endpoints
    path('register/', views.register_view, name='register'),
    path('login/', views.login_view, name='login'),
    path('refresh-token/', views.refresh_token_view, name='refresh_token'),

    # Require a valid access token
    path('logout/', views.logout_view, name='logout'),
    path('change-password/', views.change_password_view, name='change_password'),
    path('current-user/', views.current_user_view, name='current_user'),
    path('update-account/', views.update_account_view, name='update_account'),
    path('avatar/', views.update_avatar_view, name='update_avatar'),
    path('cover-image/', views.update_cover_image_view, name='update_cover_image'),
]

# Complete list of available API endpoints:
#
# AUTHENTICATION & REGISTRATION:
# - POST   /api/v1/users/register/         → Create an account (multipart: avatar required, cover_image optional)
# - POST   /api/v1/users/login/            → Issue access/refresh tokens (also set as HttpOnly cookies)
# - POST   /api/v1/users/refresh-token/    → Rotate the token pair using the refresh token cookie or body
# - POST   /api/v1/users/logout/           → Revoke the stored refresh token and clear cookies
#
# ACCOUNT MANAGEMENT:
# - POST   /api/v1/users/change-password/  → Change password (old_password, new_password, confirm_password)
# - GET    /api/v1/users/current-user/     → Authenticated user's profile
# - PATCH  /api/v1/users/update-account/   → Update fullname and email
# - PATCH  /api/v1/users/avatar/           → Replace avatar image (multipart)
# - PATCH  /api/v1/users/cover-image/      → Replace cover image (multipart)
