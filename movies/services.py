"""
Every review and watchlist mutation goes through this module.

Each function validates, writes inside a transaction, and only once the
write has committed publishes ``review_changed`` / ``watchlist_changed`` so
the movie's derived statistics are recomputed in the same request. Views
never touch Review or Watchlist rows directly.
"""
import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from movies.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from movies.models import Movie, Review, Watchlist
from movies.signals import review_changed, watchlist_changed

logger = logging.getLogger(__name__)

REVIEW_EDITABLE_FIELDS = ("rating", "title", "content", "spoilers")
WATCHLIST_EDITABLE_FIELDS = ("status", "priority", "notes", "personal_rating", "is_public")

# Moves an admin may make; approved -> pending happens only through flagging
MODERATION_TRANSITIONS = {
    Review.ModerationStatus.PENDING: {Review.ModerationStatus.APPROVED, Review.ModerationStatus.REJECTED},
    Review.ModerationStatus.REJECTED: {Review.ModerationStatus.APPROVED},
    Review.ModerationStatus.APPROVED: set(),
}


def _validate(instance):
    try:
        instance.full_clean(validate_unique=False, validate_constraints=False)
    except DjangoValidationError as e:
        raise ValidationError(e.message_dict)


def _save_unique(instance, message):
    """
    Save a row guarded by a (user, movie) unique constraint. A concurrent
    request that slipped past the existence check surfaces here as an
    IntegrityError and is reported exactly like the check itself.
    """
    try:
        with transaction.atomic():
            instance.save()
    except IntegrityError as e:
        logger.info(f"Uniqueness violation on {instance.__class__.__name__}: {e}")
        raise ConflictError(message) from e


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def get_active_movie(movie_id):
    movie = Movie.objects.filter(pk=movie_id, is_active=True).first()
    if movie is None:
        raise NotFoundError(_("The requested movie does not exist."))
    return movie


def _get_active_review(review_id, for_update=False):
    qs = Review.objects.select_related("movie", "user")
    if for_update:
        qs = qs.select_for_update()
    review = qs.filter(pk=review_id, is_active=True).first()
    if review is None:
        raise NotFoundError(_("The requested review does not exist."))
    return review


def _check_owner_or_admin(user, review, action):
    if review.user_id != user.pk and not user.is_staff:
        raise ForbiddenError(_("You can only %(action)s your own reviews.") % {"action": action})


def _check_not_own(user, review, message):
    if review.user_id == user.pk:
        raise ForbiddenError(message)


def _publish_review_change(review):
    review_changed.send(sender=Review, movie_id=review.movie_id, user_id=review.user_id)


def _publish_watchlist_change(entry):
    watchlist_changed.send(sender=Watchlist, movie_id=entry.movie_id, user_id=entry.user_id)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

def submit_review(user, movie_id, rating, title, content, spoilers=False):
    """
    Create the user's review of a movie.

    A user has at most one review per movie: if an active one exists the
    submission is rejected with ConflictError and the caller should use
    update_review() instead. A previously deleted review is brought back
    with the new content.
    """
    movie = get_active_movie(movie_id)
    duplicate = _("You have already reviewed this movie. Use the update endpoint to modify your review.")

    with transaction.atomic():
        review = (
            Review.objects.select_for_update()
            .filter(user=user, movie=movie)
            .first()
        )
        if review is not None and review.is_active:
            raise ConflictError(duplicate)

        if review is None:
            review = Review(user=user, movie=movie)
        else:
            review.is_active = True
            review.helpful_votes = 0
            review.total_votes = 0
            review.mark_edited()

        review.rating = rating
        review.title = _strip(title)
        review.content = _strip(content)
        review.spoilers = bool(spoilers)
        _validate(review)
        _save_unique(review, duplicate)

    logger.info(f"User {user.pk} reviewed movie {movie.pk} ({review.rating}★)")
    _publish_review_change(review)
    return review


def update_review(user, review_id, changes):
    """
    Apply a partial update to a review owned by ``user`` (admins may edit
    any review). Changing rating, title or content marks the review edited.
    """
    with transaction.atomic():
        review = _get_active_review(review_id, for_update=True)
        _check_owner_or_admin(user, review, "edit")

        edited = False
        for name in REVIEW_EDITABLE_FIELDS:
            if name not in changes or changes[name] is None:
                continue
            value = _strip(changes[name])
            if getattr(review, name) != value:
                setattr(review, name, value)
                edited = edited or name != "spoilers"

        if edited:
            review.mark_edited()
        _validate(review)
        review.save()

    logger.info(f"Review {review.pk} updated by user {user.pk}")
    _publish_review_change(review)
    return review


def delete_review(user, review_id):
    """Soft-delete a review; the owner or an admin only."""
    with transaction.atomic():
        review = _get_active_review(review_id, for_update=True)
        _check_owner_or_admin(user, review, "delete")
        review.is_active = False
        review.save(update_fields=["is_active", "updated_at"])

    logger.info(f"Review {review.pk} deleted by user {user.pk}")
    _publish_review_change(review)
    return review


def flag_review(user, review_id, reason):
    """
    Record a spam / inappropriate / spoiler flag. Once the flags across all
    categories reach REVIEW_FLAG_THRESHOLD an approved review drops to
    pending; nothing here ever approves a review.
    """
    if reason not in settings.REVIEW_FLAG_REASONS:
        raise ValidationError({"reason": [_("Invalid flag reason.")]})

    with transaction.atomic():
        review = _get_active_review(review_id, for_update=True)
        _check_not_own(user, review, _("You cannot flag your own review."))

        column = f"{reason}_flags"
        setattr(review, column, getattr(review, column) + 1)
        fields = [column, "updated_at"]

        if (
            review.total_flags >= settings.REVIEW_FLAG_THRESHOLD
            and review.moderation_status == Review.ModerationStatus.APPROVED
        ):
            review.moderation_status = Review.ModerationStatus.PENDING
            review.moderation_reason = f"Automatically held after {review.total_flags} flags"
            fields += ["moderation_status", "moderation_reason"]
            logger.info(f"Review {review.pk} held for moderation")

        review.save(update_fields=fields)

    _publish_review_change(review)
    return review


def _vote(user, review_id, helpful):
    review = _get_active_review(review_id)
    _check_not_own(user, review, _("You cannot vote on your own review."))

    updates = {"total_votes": F("total_votes") + 1}
    if helpful:
        updates["helpful_votes"] = F("helpful_votes") + 1
    Review.objects.filter(pk=review.pk).update(**updates)
    review.refresh_from_db(fields=["helpful_votes", "total_votes"])
    return review


def mark_helpful(user, review_id):
    """Count a helpful vote. Rating statistics are unaffected."""
    return _vote(user, review_id, helpful=True)


def mark_not_helpful(user, review_id):
    return _vote(user, review_id, helpful=False)


def moderate_review(user, review_id, status, reason=""):
    """
    Admin decision on a held or rejected review. Approving clears the flag
    counters so the review starts a fresh flag cycle.
    """
    if not user.is_staff:
        raise ForbiddenError(_("Only administrators can moderate reviews."))
    if status not in (Review.ModerationStatus.APPROVED, Review.ModerationStatus.REJECTED):
        raise ValidationError({"status": [_("Status must be 'approved' or 'rejected'.")]})

    with transaction.atomic():
        review = _get_active_review(review_id, for_update=True)
        current = review.moderation_status
        if status not in MODERATION_TRANSITIONS[current]:
            raise ValidationError(
                {"status": [_("Cannot move a review from %(old)s to %(new)s.") % {"old": current, "new": status}]}
            )

        review.moderation_status = status
        review.moderation_reason = reason or ""
        if status == Review.ModerationStatus.APPROVED:
            review.spam_flags = review.inappropriate_flags = review.spoiler_flags = 0
        review.save()

    logger.info(f"Review {review.pk} moderated {current} -> {status} by admin {user.pk}")
    _publish_review_change(review)
    return review


# ---------------------------------------------------------------------------
# Watchlist
# ---------------------------------------------------------------------------

def _get_entry(user, movie_id, for_update=False):
    qs = Watchlist.objects.select_related("movie")
    if for_update:
        qs = qs.select_for_update()
    entry = qs.filter(user=user, movie_id=movie_id).first()
    if entry is None:
        raise NotFoundError(_("This movie is not in your watchlist."))
    return entry


def get_watchlist_entry(user, movie_id):
    return _get_entry(user, movie_id)


def add_to_watchlist(user, movie_id, status=Watchlist.Status.WANT_TO_WATCH,
                     priority=Watchlist.Priority.MEDIUM, notes=""):
    movie = get_active_movie(movie_id)
    duplicate = _("This movie is already in your watchlist. Use the update endpoint to modify it.")

    if Watchlist.objects.filter(user=user, movie=movie).exists():
        raise ConflictError(duplicate)

    entry = Watchlist(
        user=user,
        movie=movie,
        status=status or Watchlist.Status.WANT_TO_WATCH,
        priority=priority or Watchlist.Priority.MEDIUM,
        notes=_strip(notes) or "",
    )
    _validate(entry)
    _save_unique(entry, duplicate)

    logger.info(f"User {user.pk} added movie {movie.pk} to watchlist")
    _publish_watchlist_change(entry)
    return entry


def update_watchlist_entry(user, movie_id, changes):
    """
    Change status, priority, notes, personal rating or visibility. The
    number of entries does not change, so no recount is published.
    A personal rating is kept only while the entry is watched.
    """
    with transaction.atomic():
        entry = _get_entry(user, movie_id, for_update=True)
        for name in WATCHLIST_EDITABLE_FIELDS:
            if name in changes:
                setattr(entry, name, _strip(changes[name]))
        if entry.notes is None:
            entry.notes = ""
        # leaving the watched state drops a rating the caller did not resubmit
        if "personal_rating" not in changes and entry.status != Watchlist.Status.WATCHED:
            entry.personal_rating = None
        _validate(entry)
        entry.save()
    return entry


def remove_from_watchlist(user, movie_id):
    with transaction.atomic():
        entry = _get_entry(user, movie_id, for_update=True)
        entry.delete()

    logger.info(f"User {user.pk} removed movie {movie_id} from watchlist")
    _publish_watchlist_change(entry)


def mark_watched(user, movie_id, personal_rating=None):
    with transaction.atomic():
        entry = _get_entry(user, movie_id, for_update=True)
        entry.status = Watchlist.Status.WATCHED
        entry.date_watched = timezone.now()
        if personal_rating is not None:
            entry.personal_rating = personal_rating
        _validate(entry)
        entry.save()
    return entry


# ---------------------------------------------------------------------------
# Movies
# ---------------------------------------------------------------------------

def increment_view_count(movie_id):
    """Bump view_count in the database without reading it first."""
    updated = Movie.objects.filter(pk=movie_id, is_active=True).update(
        view_count=F("view_count") + 1
    )
    if not updated:
        raise NotFoundError(_("The requested movie does not exist."))
