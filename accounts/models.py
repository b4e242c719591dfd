from django.db import models
from django.contrib.auth.models import (
    AbstractBaseUser,
    PermissionsMixin,
    BaseUserManager,
)
from django.core.validators import MaxLengthValidator, MinLengthValidator, RegexValidator
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


username_validator = RegexValidator(
    regex=r"^[A-Za-z0-9_]+$",
    message=_("Username may only contain letters, numbers and underscores."),
)


class CustomUserManager(BaseUserManager):
    """
    Custom user manager where email is the unique identifier for authentication.
    """
    def create_user(self, email, username, password=None, **extra_fields):
        """
        Create and save a regular User with the given email, username and password.
        """
        if not email:
            raise ValueError(_("The Email must be set"))
        if not username:
            raise ValueError(_("The Username must be set"))
        email = self.normalize_email(email).lower()
        user = self.model(email=email, username=username.strip(), **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, username, password=None, **extra_fields):
        """
        Create and save a Superuser (an admin) with the given email and password.
        """
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_("Superuser must have is_staff=True."))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_("Superuser must have is_superuser=True."))

        return self.create_user(email, username, password, **extra_fields)


class CustomUser(AbstractBaseUser, PermissionsMixin):
    username = models.CharField(
        _('username'),
        max_length=20,
        unique=True,
        validators=[MinLengthValidator(3), username_validator],
        help_text=_("Required. 3-20 characters: letters, digits and underscores."),
    )
    email = models.EmailField(
        _('email address'),
        unique=True,
        help_text=_("Required. Enter a valid email address."),
    )
    bio = models.TextField(_('bio'), max_length=500, blank=True, validators=[MaxLengthValidator(500)])
    profile_picture = models.URLField(_('profile picture'), blank=True)
    favorite_genres = models.ManyToManyField(
        'movies.Genre',
        related_name='fans',
        blank=True,
        help_text=_("Genres the user likes."),
    )
    date_joined = models.DateTimeField(_('date joined'), default=timezone.now)
    is_staff    = models.BooleanField(
        _('admin status'),
        default=False,
        help_text=_("Designates whether the user is an administrator."),
    )
    is_active   = models.BooleanField(
        _('active'),
        default=True,
        help_text=_("Designates whether this user should be treated as active. "
                    "Users are deactivated instead of deleted."),
    )
    review_count = models.PositiveIntegerField(
        default=0,
        editable=False,
        help_text=_("Number of active reviews written by the user."),
    )
    watchlist_count = models.PositiveIntegerField(
        default=0,
        editable=False,
        help_text=_("Number of movies in the user's watchlist."),
    )
    updated_at  = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    objects = CustomUserManager()

    class Meta:
        db_table = 'custom_user'
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['email'], name='accounts_email_idx'),
            models.Index(fields=['username'], name='accounts_username_idx'),
        ]

    @property
    def is_admin(self):
        return self.is_staff

    def save(self, *args, **kwargs):
        # Emails compare case-insensitively; store them lowercased
        if self.email:
            self.email = self.__class__.objects.normalize_email(self.email).strip().lower()
        self.username = self.username.strip()
        super().save(*args, **kwargs)

    def update_review_count(self):
        """
        Recount the user's active reviews and persist only that column.
        """
        self.review_count = self.reviews.filter(is_active=True).count()
        self.save(update_fields=['review_count'])

    def update_watchlist_count(self):
        self.watchlist_count = self.watchlist.count()
        self.save(update_fields=['watchlist_count'])

    def get_full_name(self):
        return self.username

    def get_short_name(self):
        return self.username

    def __str__(self):
        return self.username
