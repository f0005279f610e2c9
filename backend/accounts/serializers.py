from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import User


class RequiredCharField(serializers.CharField):
    """CharField whose missing, null and blank values all report the same error."""

    default_error_messages = {
        'required': 'All fields are required',
        'null': 'All fields are required',
        'blank': 'All fields are required',
    }

    def __init__(self, **kwargs):
        kwargs.setdefault('trim_whitespace', True)
        super().__init__(**kwargs)


class UserRegistrationSerializer(serializers.Serializer):
    """
    User registration serializer

    Uniqueness is checked by the view so that a clash answers 409.
    """
    fullname = RequiredCharField(max_length=150)
    email = serializers.EmailField(
        max_length=254,
        error_messages={
            'required': 'All fields are required',
            'null': 'All fields are required',
            'blank': 'All fields are required',
        },
    )
    username = RequiredCharField(max_length=150)
    password = RequiredCharField(write_only=True, trim_whitespace=False)

    def validate_username(self, value):
        value = value.lower()
        User.username_validator(value)
        return value

    def validate_email(self, value):
        return value.lower()

    def validate(self, attrs):
        """
        Run Django's password validators against the prospective user
        """
        candidate = User(username=attrs['username'], email=attrs['email'], fullname=attrs['fullname'])
        try:
            validate_password(attrs['password'], user=candidate)
        except DjangoValidationError as exc:
            raise serializers.ValidationError({'password': list(exc.messages)})
        return attrs

    def create(self, validated_data):
        """
        Create new user
        """
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)


class UserLoginSerializer(serializers.Serializer):
    """
    User login serializer, accepting either username or email
    """
    username = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(
        write_only=True,
        trim_whitespace=False,
        error_messages={'required': 'Password is required', 'blank': 'Password is required'},
    )

    def validate(self, attrs):
        if not attrs.get('username') and not attrs.get('email'):
            raise serializers.ValidationError('Username or email is required')
        return attrs


class UserProfileSerializer(serializers.ModelSerializer):
    """
    User profile serializer for displaying user info
    """
    class Meta:
        model = User
        fields = ('id', 'username', 'email', 'fullname', 'avatar', 'cover_image',
                  'is_active', 'created_at', 'updated_at')
        read_only_fields = fields


class PasswordChangeSerializer(serializers.Serializer):
    """
    Password change serializer
    """
    old_password = RequiredCharField(write_only=True, trim_whitespace=False)
    new_password = RequiredCharField(write_only=True, trim_whitespace=False)
    confirm_password = RequiredCharField(write_only=True, trim_whitespace=False)

    def validate(self, attrs):
        """
        Validate new password confirmation
        """
        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError('New password and confirm password do not match')
        return attrs


class AccountUpdateSerializer(serializers.Serializer):
    """
    Account details update serializer
    """
    fullname = RequiredCharField(max_length=150)
    email = serializers.EmailField(
        max_length=254,
        error_messages={
            'required': 'All fields are required',
            'null': 'All fields are required',
            'blank': 'All fields are required',
        },
    )

    def validate_email(self, value):
        return value.lower()


class AvatarSerializer(serializers.Serializer):
    avatar = serializers.FileField(
        error_messages={'required': 'Avatar file is missing', 'empty': 'Avatar file is missing',
                        'invalid': 'Avatar file is missing'},
    )


class CoverImageSerializer(serializers.Serializer):
    cover_image = serializers.FileField(
        error_messages={'required': 'Cover image file is missing', 'empty': 'Cover image file is missing',
                        'invalid': 'Cover image file is missing'},
    )
