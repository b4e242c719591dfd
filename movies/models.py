from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.core.validators import (
    MaxLengthValidator,
    MaxValueValidator,
    MinLengthValidator,
    MinValueValidator,
)
from django.utils import timezone
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _
from decimal import Decimal


STAR_BUCKETS = {1: "one", 2: "two", 3: "three", 4: "four", 5: "five"}


def empty_distribution():
    return {name: 0 for name in STAR_BUCKETS.values()}


class Genre(models.Model):
    name = models.CharField(
        max_length=100,
        unique=True,
        help_text=_("Enter a unique name for the genre."),
    )
    slug = models.SlugField(
        max_length=100,
        unique=True,
        blank=True,
        help_text=_("URL-safe identifier generated from the name."),
    )

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["slug"], name="genre_slug_idx"),
        ]

    def save(self, *args, **kwargs):
        # Always keep slug in sync with name
        self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Certification(models.TextChoices):
    G = "G", "G"
    PG = "PG", "PG"
    PG_13 = "PG-13", "PG-13"
    R = "R", "R"
    NC_17 = "NC-17", "NC-17"
    NR = "NR", _("Not rated")


class Movie(models.Model):
    imdb_id = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        help_text=_("IMDB identifier for the movie."),
    )
    tmdb_id = models.IntegerField(
        unique=True,
        null=True,
        blank=True,
        help_text=_("TMDB identifier for the movie."),
    )
    title = models.CharField(
        max_length=200,
        help_text=_("The title of the movie."),
    )
    original_title = models.CharField(max_length=200, blank=True)
    overview = models.TextField(
        max_length=2000,
        validators=[MaxLengthValidator(2000)],
        help_text=_("Brief description of the movie."),
    )
    release_date = models.DateField(
        help_text=_("The release date of the movie."),
    )
    runtime = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text=_("Runtime in minutes."),
    )
    director = models.CharField(max_length=200, blank=True, default="Unknown Director")
    cast = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Main cast members: [{\"name\", \"character\", \"profile_path\"}]."),
    )
    genres = models.ManyToManyField(
        Genre,
        related_name="movies",
        blank=True,
        help_text=_("Genres associated with this movie."),
    )
    language = models.CharField(max_length=20, default="en")
    certification = models.CharField(
        max_length=10,
        choices=Certification.choices,
        default=Certification.NR,
    )
    poster_url = models.URLField(blank=True)
    backdrop_url = models.URLField(blank=True)
    trailer_url = models.URLField(blank=True)

    # Derived from the movie's reviews and watchlist entries.
    # Written only by update_rating_stats() / update_watchlist_count().
    average_rating = models.DecimalField(
        max_digits=2,
        decimal_places=1,
        default=Decimal("0.0"),
        editable=False,
        db_index=True,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
        help_text=_("Mean of approved, active review ratings (one decimal)."),
    )
    total_ratings = models.PositiveIntegerField(default=0, editable=False)
    rating_distribution = models.JSONField(default=empty_distribution, editable=False)
    watchlist_count = models.PositiveIntegerField(default=0, editable=False)

    popularity = models.FloatField(default=0, db_index=True)
    view_count = models.PositiveIntegerField(default=0, editable=False)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["release_date"], name="movie_release_idx"),
            models.Index(fields=["is_active", "popularity"], name="movie_active_pop_idx"),
        ]

    def update_rating_stats(self):
        """
        Recompute average_rating, total_ratings and rating_distribution from
        the full set of active, approved reviews and persist them together.
        """
        from movies.aggregates import summarize_ratings

        ratings = self.reviews.filter(
            is_active=True,
            moderation_status=Review.ModerationStatus.APPROVED,
        ).values_list("rating", flat=True)
        summary = summarize_ratings(ratings)

        self.average_rating = summary.average
        self.total_ratings = summary.count
        self.rating_distribution = summary.distribution
        self.save(update_fields=["average_rating", "total_ratings", "rating_distribution", "updated_at"])
        return summary

    def update_watchlist_count(self):
        self.watchlist_count = self.watchlisted_by.count()
        self.save(update_fields=["watchlist_count", "updated_at"])
        return self.watchlist_count

    @property
    def year(self):
        return self.release_date.year if self.release_date else None

    def __str__(self):
        # Show title plus year, for readability
        return f"{self.title} ({self.year or 'n.d.'})"


class Review(models.Model):

    class ModerationStatus(models.TextChoices):
        APPROVED = "approved", _("Approved")
        PENDING = "pending", _("Pending")
        REJECTED = "rejected", _("Rejected")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="reviews"
    )
    movie = models.ForeignKey(
        Movie, on_delete=models.CASCADE, related_name="reviews"
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text=_("Star rating from 1 to 5."),
    )
    title = models.CharField(max_length=100, validators=[MinLengthValidator(3)])
    content = models.TextField(
        max_length=2000,
        validators=[MinLengthValidator(10), MaxLengthValidator(2000)],
    )
    spoilers = models.BooleanField(default=False)
    helpful_votes = models.PositiveIntegerField(default=0)
    total_votes = models.PositiveIntegerField(default=0)
    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    moderation_status = models.CharField(
        max_length=10,
        choices=ModerationStatus.choices,
        default=ModerationStatus.APPROVED,
        db_index=True,
    )
    moderation_reason = models.CharField(max_length=255, blank=True)
    spam_flags = models.PositiveIntegerField(default=0)
    inappropriate_flags = models.PositiveIntegerField(default=0)
    spoiler_flags = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["user", "movie"], name="unique_review_per_user_movie"),
        ]
        indexes = [
            models.Index(fields=["movie", "created_at"], name="review_movie_time_idx"),
            models.Index(fields=["user", "created_at"], name="review_user_time_idx"),
            models.Index(fields=["helpful_votes"], name="review_helpful_idx"),
        ]

    @property
    def total_flags(self):
        return self.spam_flags + self.inappropriate_flags + self.spoiler_flags

    @property
    def helpful_percentage(self):
        if self.total_votes == 0:
            return 0
        return int(self.helpful_votes * 100 / self.total_votes + 0.5)

    def mark_edited(self):
        self.is_edited = True
        self.edited_at = timezone.now()

    def __str__(self):
        return f"{self.rating}★ by {self.user} on {self.movie.title}"


class Watchlist(models.Model):

    class Status(models.TextChoices):
        WANT_TO_WATCH = "want_to_watch", _("Want to watch")
        WATCHING = "watching", _("Watching")
        WATCHED = "watched", _("Watched")

    class Priority(models.TextChoices):
        LOW = "low", _("Low")
        MEDIUM = "medium", _("Medium")
        HIGH = "high", _("High")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="watchlist"
    )
    movie = models.ForeignKey(
        Movie, on_delete=models.CASCADE, related_name="watchlisted_by"
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.WANT_TO_WATCH
    )
    priority = models.CharField(
        max_length=10, choices=Priority.choices, default=Priority.MEDIUM
    )
    notes = models.TextField(max_length=500, blank=True, validators=[MaxLengthValidator(500)])
    personal_rating = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
    )
    date_watched = models.DateTimeField(null=True, blank=True)
    is_public = models.BooleanField(default=True)
    added_on = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-added_on"]
        constraints = [
            models.UniqueConstraint(fields=["user", "movie"], name="unique_watchlist_per_user_movie"),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="watchlist_user_status_idx"),
        ]

    def clean(self):
        if self.personal_rating is not None and self.status != self.Status.WATCHED:
            raise ValidationError({"personal_rating": _("Only watched movies can be rated.")})

    def save(self, *args, **kwargs):
        # date_watched is set exactly while the entry is in the watched state
        if self.status == self.Status.WATCHED:
            if self.date_watched is None:
                self.date_watched = timezone.now()
        else:
            self.date_watched = None
        super().save(*args, **kwargs)

    def __str__(self):
        status = "✓" if self.status == self.Status.WATCHED else "⏳"
        return f"{status} {self.user} – {self.movie.title}"
