import pytest

from movies import aggregates, services
from movies.exceptions import ConflictError, NotFoundError, ValidationError
from movies.models import Watchlist


@pytest.fixture
def count_calls(monkeypatch):
    calls = []
    original = aggregates.recompute_watchlist_count

    def counting(movie_id):
        calls.append(movie_id)
        return original(movie_id)

    monkeypatch.setattr(aggregates, "recompute_watchlist_count", counting)
    return calls


def test_two_users_add_then_one_removes(alice, bob, movie):
    assert movie.watchlist_count == 0

    services.add_to_watchlist(alice, movie.pk)
    movie.refresh_from_db()
    assert movie.watchlist_count == 1

    services.add_to_watchlist(bob, movie.pk)
    movie.refresh_from_db()
    assert movie.watchlist_count == 2

    services.remove_from_watchlist(alice, movie.pk)
    movie.refresh_from_db()
    assert movie.watchlist_count == 1

    alice.refresh_from_db()
    bob.refresh_from_db()
    assert alice.watchlist_count == 0
    assert bob.watchlist_count == 1


def test_add_defaults(alice, movie):
    entry = services.add_to_watchlist(alice, movie.pk, notes="  with popcorn  ")
    assert entry.status == Watchlist.Status.WANT_TO_WATCH
    assert entry.priority == Watchlist.Priority.MEDIUM
    assert entry.notes == "with popcorn"
    assert entry.date_watched is None


def test_duplicate_entry_conflicts(alice, movie):
    services.add_to_watchlist(alice, movie.pk)
    with pytest.raises(ConflictError):
        services.add_to_watchlist(alice, movie.pk, status=Watchlist.Status.WATCHING)
    assert Watchlist.objects.filter(user=alice, movie=movie).count() == 1


def test_add_inactive_movie_not_found(alice, make_movie):
    with pytest.raises(NotFoundError):
        services.add_to_watchlist(alice, make_movie(is_active=False).pk)


def test_notes_length_validated(alice, movie):
    with pytest.raises(ValidationError) as exc:
        services.add_to_watchlist(alice, movie.pk, notes="x" * 501)
    assert "notes" in exc.value.detail
    assert not Watchlist.objects.exists()


def test_status_updates_do_not_recount(alice, movie, count_calls):
    services.add_to_watchlist(alice, movie.pk)
    assert count_calls == [movie.pk]

    services.update_watchlist_entry(alice, movie.pk, {"status": Watchlist.Status.WATCHING, "priority": "high"})
    services.mark_watched(alice, movie.pk)
    assert count_calls == [movie.pk]

    services.remove_from_watchlist(alice, movie.pk)
    assert count_calls == [movie.pk, movie.pk]


def test_date_watched_follows_status(alice, movie):
    services.add_to_watchlist(alice, movie.pk)

    entry = services.update_watchlist_entry(alice, movie.pk, {"status": Watchlist.Status.WATCHED})
    assert entry.date_watched is not None

    entry = services.update_watchlist_entry(alice, movie.pk, {"status": Watchlist.Status.WATCHING})
    assert entry.date_watched is None


def test_entry_created_as_watched_gets_a_date(alice, movie):
    entry = services.add_to_watchlist(alice, movie.pk, status=Watchlist.Status.WATCHED)
    entry.refresh_from_db()
    assert entry.date_watched is not None


def test_mark_watched_with_rating(alice, movie):
    services.add_to_watchlist(alice, movie.pk)

    entry = services.mark_watched(alice, movie.pk, personal_rating=4)

    entry.refresh_from_db()
    assert entry.status == Watchlist.Status.WATCHED
    assert entry.personal_rating == 4
    assert entry.date_watched is not None


def test_personal_rating_range(alice, movie):
    services.add_to_watchlist(alice, movie.pk, status=Watchlist.Status.WATCHED)
    with pytest.raises(ValidationError):
        services.update_watchlist_entry(alice, movie.pk, {"personal_rating": 9})


def test_unwatched_entry_cannot_be_rated(alice, movie):
    services.add_to_watchlist(alice, movie.pk)

    with pytest.raises(ValidationError) as exc:
        services.update_watchlist_entry(alice, movie.pk, {"personal_rating": 4})

    assert "personal_rating" in exc.value.detail
    assert Watchlist.objects.get(user=alice, movie=movie).personal_rating is None


def test_leaving_watched_clears_rating(alice, movie):
    services.add_to_watchlist(alice, movie.pk)
    services.mark_watched(alice, movie.pk, personal_rating=5)

    entry = services.update_watchlist_entry(alice, movie.pk, {"status": Watchlist.Status.WATCHING})

    entry.refresh_from_db()
    assert entry.personal_rating is None
    assert entry.date_watched is None


def test_rating_and_watched_status_in_one_update(alice, movie):
    services.add_to_watchlist(alice, movie.pk)

    entry = services.update_watchlist_entry(
        alice, movie.pk, {"status": Watchlist.Status.WATCHED, "personal_rating": 3}
    )

    entry.refresh_from_db()
    assert entry.personal_rating == 3


def test_missing_entry_not_found(alice, movie):
    with pytest.raises(NotFoundError):
        services.remove_from_watchlist(alice, movie.pk)
    with pytest.raises(NotFoundError):
        services.mark_watched(alice, movie.pk)
    with pytest.raises(NotFoundError):
        services.update_watchlist_entry(alice, movie.pk, {"notes": "later"})
