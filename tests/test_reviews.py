from decimal import Decimal

import pytest

from movies import aggregates, services
from movies.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from movies.models import Review

CONTENT = "Long enough to count as a real review."


def submit(user, movie, rating, **kwargs):
    return services.submit_review(
        user, movie.pk, rating=rating, title=kwargs.pop("title", "My take"), content=CONTENT, **kwargs
    )


@pytest.fixture
def rating_calls(monkeypatch):
    """Count invocations of the rating aggregator, still running it."""
    calls = []
    original = aggregates.recompute_movie_rating

    def counting(movie_id):
        calls.append(movie_id)
        return original(movie_id)

    monkeypatch.setattr(aggregates, "recompute_movie_rating", counting)
    return calls


def test_two_users_review_then_one_deletes(alice, bob, movie):
    review_a = submit(alice, movie, 5)
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("5.0")
    assert movie.total_ratings == 1

    submit(bob, movie, 3)
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("4.0")
    assert movie.total_ratings == 2

    services.delete_review(alice, review_a.pk)
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("3.0")
    assert movie.total_ratings == 1
    assert movie.rating_distribution == {"one": 0, "two": 0, "three": 1, "four": 0, "five": 0}


def test_submit_updates_author_review_count(alice, make_movie):
    first, second = make_movie(), make_movie()
    submit(alice, first, 4)
    review = submit(alice, second, 2)
    alice.refresh_from_db()
    assert alice.review_count == 2

    services.delete_review(alice, review.pk)
    alice.refresh_from_db()
    assert alice.review_count == 1


def test_duplicate_submission_conflicts(alice, movie):
    submit(alice, movie, 4)

    with pytest.raises(ConflictError):
        submit(alice, movie, 2)

    assert Review.objects.filter(user=alice, movie=movie).count() == 1
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("4.0")


def test_storage_level_duplicate_is_reported_as_conflict(alice, movie):
    submit(alice, movie, 4)
    racer = Review(user=alice, movie=movie, rating=1, title="Racing", content=CONTENT)

    with pytest.raises(ConflictError):
        services._save_unique(racer, "duplicate")

    assert Review.objects.filter(user=alice, movie=movie).count() == 1


def test_submit_validates_fields(alice, movie):
    with pytest.raises(ValidationError) as exc:
        services.submit_review(alice, movie.pk, rating=6, title="ok", content="short")
    assert {"rating", "title", "content"} <= set(exc.value.detail)
    assert not Review.objects.exists()


def test_submit_to_inactive_movie_is_not_found(alice, make_movie):
    hidden = make_movie(is_active=False)
    with pytest.raises(NotFoundError):
        submit(alice, hidden, 3)


def test_resubmitting_deleted_review_revives_it(alice, movie):
    review = submit(alice, movie, 2)
    services.delete_review(alice, review.pk)

    revived = submit(alice, movie, 5, title="Second look")

    assert revived.pk == review.pk
    assert revived.is_active
    assert revived.is_edited
    assert revived.title == "Second look"
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("5.0")


def test_each_review_mutation_recomputes_once(alice, bob, movie, rating_calls):
    review = submit(alice, movie, 4)
    assert rating_calls == [movie.pk]

    services.update_review(alice, review.pk, {"rating": 2})
    assert len(rating_calls) == 2

    services.flag_review(bob, review.pk, "spam")
    assert len(rating_calls) == 3

    services.delete_review(alice, review.pk)
    assert len(rating_calls) == 4


def test_votes_do_not_recompute(alice, bob, movie, rating_calls):
    review = submit(alice, movie, 4)
    rating_calls.clear()

    services.mark_helpful(bob, review.pk)
    review = services.mark_not_helpful(bob, review.pk)

    assert rating_calls == []
    assert review.helpful_votes == 1
    assert review.total_votes == 2
    assert review.helpful_percentage == 50


def test_update_rating_marks_edited(alice, movie):
    review = submit(alice, movie, 4)

    review = services.update_review(alice, review.pk, {"rating": 2, "content": "  " + CONTENT + "  "})

    assert review.is_edited
    assert review.edited_at is not None
    assert review.content == CONTENT
    movie.refresh_from_db()
    assert movie.average_rating == Decimal("2.0")


def test_toggling_spoilers_is_not_an_edit(alice, movie):
    review = submit(alice, movie, 4)
    review = services.update_review(alice, review.pk, {"spoilers": True})
    assert review.spoilers
    assert not review.is_edited


def test_only_owner_or_admin_may_edit(alice, bob, admin_user, movie):
    review = submit(alice, movie, 4)

    with pytest.raises(ForbiddenError):
        services.update_review(bob, review.pk, {"rating": 1})
    with pytest.raises(ForbiddenError):
        services.delete_review(bob, review.pk)

    review = services.update_review(admin_user, review.pk, {"title": "Moderated title"})
    assert review.title == "Moderated title"


def test_cannot_vote_on_or_flag_own_review(alice, movie):
    review = submit(alice, movie, 4)

    with pytest.raises(ForbiddenError):
        services.mark_helpful(alice, review.pk)
    with pytest.raises(ForbiddenError):
        services.mark_not_helpful(alice, review.pk)
    with pytest.raises(ForbiddenError):
        services.flag_review(alice, review.pk, "spam")


def test_unknown_flag_reason_rejected(alice, bob, movie):
    review = submit(alice, movie, 4)
    with pytest.raises(ValidationError):
        services.flag_review(bob, review.pk, "boring")


def test_fifth_flag_holds_review_for_moderation(alice, bob, movie):
    review = submit(alice, movie, 4)

    for reason in ("spam", "spam", "inappropriate", "spoiler"):
        review = services.flag_review(bob, review.pk, reason)
    assert review.total_flags == 4
    assert review.moderation_status == Review.ModerationStatus.APPROVED
    movie.refresh_from_db()
    assert movie.total_ratings == 1

    review = services.flag_review(bob, review.pk, "spoiler")
    assert review.total_flags == 5
    assert review.moderation_status == Review.ModerationStatus.PENDING
    movie.refresh_from_db()
    assert movie.total_ratings == 0
    assert movie.average_rating == Decimal("0.0")


def test_more_flags_never_approve(alice, bob, movie):
    review = submit(alice, movie, 4)
    Review.objects.filter(pk=review.pk).update(
        moderation_status=Review.ModerationStatus.REJECTED, spam_flags=7
    )
    review = services.flag_review(bob, review.pk, "spam")
    assert review.moderation_status == Review.ModerationStatus.REJECTED


def test_admin_approves_held_review(alice, bob, admin_user, movie):
    review = submit(alice, movie, 4)
    Review.objects.filter(pk=review.pk).update(
        moderation_status=Review.ModerationStatus.PENDING, spam_flags=5
    )
    services.update_review(alice, review.pk, {"spoilers": True})
    movie.refresh_from_db()
    assert movie.total_ratings == 0

    review = services.moderate_review(admin_user, review.pk, Review.ModerationStatus.APPROVED)

    assert review.moderation_status == Review.ModerationStatus.APPROVED
    assert review.total_flags == 0
    movie.refresh_from_db()
    assert movie.total_ratings == 1


def test_moderation_rules(alice, bob, admin_user, movie):
    review = submit(alice, movie, 4)

    with pytest.raises(ForbiddenError):
        services.moderate_review(bob, review.pk, Review.ModerationStatus.REJECTED)
    # approved reviews only leave that state through flagging
    with pytest.raises(ValidationError):
        services.moderate_review(admin_user, review.pk, Review.ModerationStatus.REJECTED)
    with pytest.raises(ValidationError):
        services.moderate_review(admin_user, review.pk, Review.ModerationStatus.PENDING)

    Review.objects.filter(pk=review.pk).update(moderation_status=Review.ModerationStatus.PENDING)
    review = services.moderate_review(admin_user, review.pk, Review.ModerationStatus.REJECTED, "Off topic")
    assert review.moderation_reason == "Off topic"

    review = services.moderate_review(admin_user, review.pk, Review.ModerationStatus.APPROVED)
    assert review.moderation_status == Review.ModerationStatus.APPROVED


def test_operations_on_deleted_review_are_not_found(alice, bob, movie):
    review = submit(alice, movie, 4)
    services.delete_review(alice, review.pk)

    with pytest.raises(NotFoundError):
        services.update_review(alice, review.pk, {"rating": 3})
    with pytest.raises(NotFoundError):
        services.mark_helpful(bob, review.pk)


def test_increment_view_count(movie, make_movie):
    services.increment_view_count(movie.pk)
    services.increment_view_count(movie.pk)
    movie.refresh_from_db()
    assert movie.view_count == 2

    with pytest.raises(NotFoundError):
        services.increment_view_count(make_movie(is_active=False).pk)
