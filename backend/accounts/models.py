from django.contrib.auth.models import AbstractUser, UserManager as BaseUserManager
from django.db import models


class UserManager(BaseUserManager):
    """
    Manager that keeps username and email normalised to lower case
    """

    def _create_user(self, username, email, password, **extra_fields):
        username = (username or "").strip().lower()
        email = (email or "").strip().lower()
        return super()._create_user(username, email, password, **extra_fields)

    def get_by_username_or_email(self, username=None, email=None):
        """
        Return the first user matching either identifier, or None
        """
        lookup = models.Q()
        if username:
            lookup |= models.Q(username=username.strip().lower())
        if email:
            lookup |= models.Q(email=email.strip().lower())
        if not lookup:
            return None
        return self.filter(lookup).first()


class User(AbstractUser):
    """
    User model
    """
    email = models.EmailField(unique=True)
    fullname = models.CharField(max_length=150, db_index=True, verbose_name="Full Name")
    avatar = models.URLField(max_length=500, verbose_name="Avatar URL")
    cover_image = models.URLField(max_length=500, blank=True, default="", verbose_name="Cover Image URL")
    # Last refresh token handed out; empty once the user logs out
    refresh_token = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = ['email']

    class Meta:
        db_table = 'user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        if self.username:
            self.username = self.username.strip().lower()
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)
