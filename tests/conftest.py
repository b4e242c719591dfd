import datetime
import itertools

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from movies.models import Genre, Movie

User = get_user_model()

PASSWORD = "popcorn-2024"


@pytest.fixture
def make_user(db):
    seq = itertools.count(1)

    def _make(**kwargs):
        n = next(seq)
        kwargs.setdefault("email", f"viewer{n}@example.com")
        kwargs.setdefault("username", f"viewer{n}")
        password = kwargs.pop("password", PASSWORD)
        return User.objects.create_user(password=password, **kwargs)

    return _make


@pytest.fixture
def alice(make_user):
    return make_user(email="alice@example.com", username="alice")


@pytest.fixture
def bob(make_user):
    return make_user(email="bob@example.com", username="bob")


@pytest.fixture
def admin_user(db):
    return User.objects.create_superuser("admin@example.com", "admin", PASSWORD)


@pytest.fixture
def drama(db):
    return Genre.objects.create(name="Drama")


@pytest.fixture
def make_movie(db):
    seq = itertools.count(1)

    def _make(**kwargs):
        n = next(seq)
        kwargs.setdefault("title", f"Movie {n}")
        kwargs.setdefault("overview", "A film about people doing things.")
        kwargs.setdefault("release_date", datetime.date(2016, 11, 11))
        kwargs.setdefault("runtime", 110)
        genres = kwargs.pop("genres", [])
        movie = Movie.objects.create(**kwargs)
        if genres:
            movie.genres.set(genres)
        return movie

    return _make


@pytest.fixture
def movie(make_movie, drama):
    return make_movie(title="Arrival", genres=[drama])


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture
def review_data():
    return {
        "rating": 5,
        "title": "Quietly brilliant",
        "content": "A patient, moving film about language and time.",
    }


@pytest.fixture
def no_retry(monkeypatch):
    """Record queued aggregate retries instead of talking to a broker."""
    from movies import tasks

    queued = []
    monkeypatch.setattr(tasks.recompute_movie_aggregates, "delay", lambda movie_id: queued.append(movie_id))
    return queued
