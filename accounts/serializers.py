from contextlib import contextmanager

from rest_framework import serializers
from rest_framework.exceptions import ValidationError
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils.translation import gettext_lazy as _
from django.contrib.auth import password_validation
import logging

from movies.exceptions import ConflictError
from movies.models import Genre
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

logger = logging.getLogger(__name__)
User = get_user_model()


def clean_username(value, instance=None):
    """
    Run the model's username validators, then check case-insensitive
    uniqueness. A taken username raises ConflictError.
    """
    username = value.strip()
    User._meta.get_field('username').run_validators(username)
    qs = User.objects.filter(username__iexact=username)
    if instance is not None:
        qs = qs.exclude(pk=instance.pk)
    if qs.exists():
        raise ConflictError(_("Username is already taken."))
    return username


@contextmanager
def unique_account_fields():
    """
    Save inside a savepoint; a concurrent request that took the same email
    or username after validation surfaces as ConflictError.
    """
    try:
        with transaction.atomic():
            yield
    except IntegrityError as e:
        logger.info(f"Uniqueness violation on account save: {e}")
        raise ConflictError(_("An account with this email or username already exists.")) from e


class UserSerializer(serializers.ModelSerializer):
    """
    The authenticated user's own profile.
    """
    favorite_genres = serializers.SlugRelatedField(
        many=True,
        slug_field='name',
        queryset=Genre.objects.all(),
        required=False,
        help_text=_("Names of the genres the user likes"),
    )

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'bio', 'profile_picture',
            'favorite_genres', 'review_count', 'watchlist_count',
            'date_joined', 'last_login', 'is_active', 'is_staff', 'updated_at',
        )
        read_only_fields = (
            'id', 'email', 'review_count', 'watchlist_count',
            'date_joined', 'last_login', 'is_active', 'is_staff', 'updated_at',
        )
        extra_kwargs = {
            'username': {'validators': []},
        }

    def validate_username(self, value):
        return clean_username(value, self.instance)

    def update(self, instance, validated_data):
        """
        Update profile fields but never allow direct superuser or staff elevation.
        Only the submitted columns are written, so the review / watchlist
        counters are left as the recompute last stored them.
        """
        for forbidden in ('is_superuser', 'is_staff', 'is_active'):
            validated_data.pop(forbidden, None)

        genres = validated_data.pop('favorite_genres', None)
        for attr, val in validated_data.items():
            setattr(instance, attr, val)

        with unique_account_fields():
            instance.save(update_fields=[*validated_data, 'updated_at'])
            if genres is not None:
                instance.favorite_genres.set(genres)

        logger.info(f"User {instance.email} updated fields: {list(validated_data.keys())}")
        return instance


class PublicUserSerializer(serializers.ModelSerializer):
    """
    What other people see: no email, no account flags.
    """
    favorite_genres = serializers.SlugRelatedField(many=True, read_only=True, slug_field='name')

    class Meta:
        model = User
        fields = (
            'id', 'username', 'bio', 'profile_picture', 'favorite_genres',
            'review_count', 'watchlist_count', 'date_joined',
        )
        read_only_fields = fields


class AdminUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'review_count', 'watchlist_count',
            'is_active', 'is_staff', 'date_joined', 'last_login',
        )
        read_only_fields = fields


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Registers a new user, hashing the password and setting favorite_genres.

    A taken email or username is a conflict (409), not a validation error.
    """
    password = serializers.CharField(
        write_only=True,
        style={'input_type': 'password'},
        label=_("Password"),
    )
    favorite_genres = serializers.SlugRelatedField(
        many=True,
        slug_field='name',
        queryset=Genre.objects.all(),
        required=False,
    )

    class Meta:
        model = User
        fields = (
            'id', 'username', 'email', 'password',
            'bio', 'favorite_genres',
        )
        read_only_fields = ('id',)
        extra_kwargs = {
            # uniqueness is reported as a conflict in validate_* below
            'username': {'validators': []},
            'email': {'validators': []},
        }

    def validate_username(self, value):
        return clean_username(value)

    def validate_email(self, value):
        email = value.strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise ConflictError(_("This email is already in use."))
        return email

    def validate_password(self, value):
        password_validation.validate_password(value, self.instance or User())
        return value

    def create(self, validated_data):
        genres = validated_data.pop('favorite_genres', [])
        password = validated_data.pop('password')
        with unique_account_fields():
            # create_user handles set_password + save
            user = User.objects.create_user(
                email=validated_data['email'],
                username=validated_data['username'],
                password=password,
                bio=validated_data.get('bio', ''),
            )
            if genres:
                user.favorite_genres.set(genres)
        logger.info(f"Registered user {user.pk} ({user.username})")
        return user


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Issue JWTs that carry email, username and admin claims.
    """
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email']    = user.email
        token['username'] = user.username
        token['is_admin'] = user.is_admin
        return token


class PasswordChangeSerializer(serializers.Serializer):
    """
    Changes a user's password, verifying the old one first.
    """
    old_password = serializers.CharField(
        write_only=True,
        style={'input_type': 'password'},
        label=_("Old Password"),
    )
    new_password = serializers.CharField(
        write_only=True,
        style={'input_type': 'password'},
        label=_("New Password"),
    )

    def validate(self, attrs):
        user = self.context['request'].user
        if not user.check_password(attrs.get('old_password', '')):
            raise ValidationError({"old_password": _("Old password is incorrect.")})
        password_validation.validate_password(attrs['new_password'], user)
        return attrs

    def save(self, **kwargs):
        user = self.context['request'].user
        user.set_password(self.validated_data['new_password'])
        user.save(update_fields=['password', 'updated_at'])
        logger.info(f"User {user.email} changed their password.")
        return user
