import pytest
from django.contrib.auth import get_user_model

from accounts.serializers import UserRegistrationSerializer, UserSerializer
from movies import services
from movies.exceptions import ConflictError

PASSWORD = "popcorn-2024"

User = get_user_model()

pytestmark = pytest.mark.django_db


def register(client, **overrides):
    data = {
        "username": "new_viewer",
        "email": "New.Viewer@Example.com",
        "password": "popcorn-2024",
        **overrides,
    }
    return client.post("/api/auth/register/", data, format="json")


def test_register_creates_user(api_client, drama):
    resp = register(api_client, favorite_genres=["Drama"])

    assert resp.status_code == 201
    assert "password" not in resp.data
    user = User.objects.get(username="new_viewer")
    assert user.email == "new.viewer@example.com"
    assert user.check_password("popcorn-2024")
    assert list(user.favorite_genres.values_list("name", flat=True)) == ["Drama"]


def test_register_duplicate_email_or_username_is_409(api_client, alice):
    assert register(api_client, email="ALICE@example.com").status_code == 409
    assert register(api_client, username="Alice").status_code == 409


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"username": "ab"}, "username"),
        ({"username": "no spaces!"}, "username"),
        ({"email": "not-an-email"}, "email"),
        ({"password": "123"}, "password"),
    ],
)
def test_register_validation(api_client, overrides, field):
    resp = register(api_client, **overrides)
    assert resp.status_code == 400
    assert field in resp.data


def test_login_returns_token_pair(api_client, alice):
    resp = api_client.post(
        "/api/auth/login/", {"email": "alice@example.com", "password": PASSWORD}, format="json"
    )
    assert resp.status_code == 200
    assert {"access", "refresh"} <= set(resp.data)

    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {resp.data['access']}")
    profile = api_client.get("/api/auth/profile/")
    assert profile.status_code == 200
    assert profile.data["username"] == "alice"


def test_login_wrong_password(api_client, alice):
    resp = api_client.post(
        "/api/auth/login/", {"email": "alice@example.com", "password": "nope"}, format="json"
    )
    assert resp.status_code == 401


def test_profile_update(client_for, alice, bob, drama):
    client = client_for(alice)

    resp = client.patch(
        "/api/auth/profile/",
        {"bio": "Sci-fi mostly.", "favorite_genres": ["Drama"], "is_staff": True},
        format="json",
    )
    assert resp.status_code == 200
    alice.refresh_from_db()
    assert alice.bio == "Sci-fi mostly."
    assert alice.is_staff is False

    assert client.patch("/api/auth/profile/", {"username": "bob"}, format="json").status_code == 409
    assert client.patch("/api/auth/profile/", {"bio": "x" * 501}, format="json").status_code == 400


def test_password_change(client_for, alice):
    client = client_for(alice)

    resp = client.post(
        "/api/auth/password-change/",
        {"old_password": "wrong", "new_password": "another-secret-9"},
        format="json",
    )
    assert resp.status_code == 400

    resp = client.post(
        "/api/auth/password-change/",
        {"old_password": PASSWORD, "new_password": "another-secret-9"},
        format="json",
    )
    assert resp.status_code == 200
    alice.refresh_from_db()
    assert alice.check_password("another-secret-9")


def test_registration_save_race_is_conflict(alice):
    # validation already passed; the clash is only seen by the database
    serializer = UserRegistrationSerializer()
    with pytest.raises(ConflictError):
        serializer.create({"email": "alice@example.com", "username": "someone", "password": PASSWORD})
    assert not User.objects.filter(username="someone").exists()


def test_profile_save_race_is_conflict(alice, bob):
    with pytest.raises(ConflictError):
        UserSerializer().update(bob, {"username": "alice"})
    bob.refresh_from_db()
    assert bob.username == "bob"


def test_profile_writes_keep_counters(client_for, alice, movie):
    client = client_for(alice)
    services.submit_review(
        alice, movie.pk, rating=4, title="Solid", content="Worth a watch on a slow evening."
    )
    services.add_to_watchlist(alice, movie.pk)

    assert client.patch("/api/auth/profile/", {"bio": "Late shows only."}, format="json").status_code == 200
    resp = client.post(
        "/api/auth/password-change/",
        {"old_password": PASSWORD, "new_password": "another-secret-9"},
        format="json",
    )
    assert resp.status_code == 200

    alice.refresh_from_db()
    assert alice.bio == "Late shows only."
    assert alice.review_count == 1
    assert alice.watchlist_count == 1


def test_public_profile_hides_email_and_inactive_users(api_client, alice):
    resp = api_client.get(f"/api/users/{alice.pk}/")
    assert resp.status_code == 200
    assert "email" not in resp.data

    User.objects.filter(pk=alice.pk).update(is_active=False)
    assert api_client.get(f"/api/users/{alice.pk}/").status_code == 404


def test_user_reviews_and_stats(api_client, alice, bob, make_movie):
    first, second, third = make_movie(), make_movie(), make_movie()
    for movie, rating in ((first, 5), (second, 4), (third, 4)):
        services.submit_review(alice, movie.pk, rating=rating, title="Nice", content="Enjoyed it a great deal.")
    review = alice.reviews.get(movie=third)
    services.mark_helpful(bob, review.pk)
    services.delete_review(alice, alice.reviews.get(movie=second).pk)

    resp = api_client.get(f"/api/users/{alice.pk}/reviews/", {"sort_by": "rating_high"})
    assert resp.status_code == 200
    assert [r["rating"] for r in resp.data["results"]] == [5, 4]

    resp = api_client.get(f"/api/users/{alice.pk}/review-stats/")
    assert resp.data["total_reviews"] == 2
    assert resp.data["average_rating"] == 4.5
    assert resp.data["total_helpful_votes"] == 1
    assert resp.data["rating_distribution"]["four"] == 1


def test_top_and_search(api_client, alice, bob, make_movie):
    movie = make_movie()
    services.submit_review(alice, movie.pk, rating=3, title="Fine", content="Perfectly fine film.")

    resp = api_client.get("/api/users/top/")
    assert [u["username"] for u in resp.data] == ["alice"]

    resp = api_client.get("/api/users/search/", {"q": "BO"})
    assert [u["username"] for u in resp.data] == ["bob"]

    assert api_client.get("/api/users/search/", {"q": "b"}).status_code == 400


def test_admin_user_management(client_for, alice, admin_user):
    assert client_for(alice).get("/api/users/").status_code == 403

    admin = client_for(admin_user)
    resp = admin.get("/api/users/")
    assert resp.status_code == 200
    assert resp.data["count"] == 2

    resp = admin.patch(f"/api/users/{alice.pk}/toggle-status/")
    assert resp.status_code == 200
    assert resp.data["is_active"] is False

    resp = admin.patch(f"/api/users/{alice.pk}/toggle-status/")
    assert resp.data["is_active"] is True

    assert admin.patch(f"/api/users/{admin_user.pk}/toggle-status/").status_code == 403
    assert admin.patch("/api/users/987654/toggle-status/").status_code == 404
