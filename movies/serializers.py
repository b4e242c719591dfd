from django.conf import settings
from rest_framework import serializers

from movies.models import Genre, Movie, Review, Watchlist


def _request_user(serializer):
    request = serializer.context.get("request")
    user = getattr(request, "user", None)
    if not user or user.is_anonymous:
        return None
    return user


class GenreSerializer(serializers.ModelSerializer):
    class Meta:
        model = Genre
        fields = ["id", "name", "slug"]


class MovieCardSerializer(serializers.ModelSerializer):
    """
    The minimal “card” shown in lists and inside watchlist entries.
    """
    genres = serializers.SlugRelatedField(many=True, read_only=True, slug_field="name")

    class Meta:
        model = Movie
        fields = [
            "id",
            "title",
            "poster_url",
            "release_date",
            "year",
            "runtime",
            "genres",
            "average_rating",
            "total_ratings",
        ]


class MovieMiniSerializer(MovieCardSerializer):
    in_watchlist = serializers.SerializerMethodField()

    class Meta(MovieCardSerializer.Meta):
        fields = MovieCardSerializer.Meta.fields + [
            "overview",
            "popularity",
            "watchlist_count",
            "in_watchlist",
        ]

    def get_in_watchlist(self, obj):
        user = _request_user(self)
        if user is None:
            return False
        return obj.watchlisted_by.filter(user=user).exists()


class ReviewSerializer(serializers.ModelSerializer):
    user = serializers.SerializerMethodField()
    movie_title = serializers.CharField(source="movie.title", read_only=True)
    helpful_percentage = serializers.IntegerField(read_only=True)

    class Meta:
        model = Review
        fields = [
            "id",
            "movie",
            "movie_title",
            "user",
            "rating",
            "title",
            "content",
            "spoilers",
            "helpful_votes",
            "total_votes",
            "helpful_percentage",
            "is_edited",
            "edited_at",
            "moderation_status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_user(self, obj):
        return {
            "id": obj.user.id,
            "username": obj.user.username,
            "profile_picture": obj.user.profile_picture,
            "review_count": obj.user.review_count,
        }


class MovieDetailSerializer(serializers.ModelSerializer):
    """
    The data for GET /api/movies/{id}/
    """
    genres = GenreSerializer(many=True, read_only=True)
    top_reviews = serializers.SerializerMethodField()
    in_watchlist = serializers.SerializerMethodField()
    user_review = serializers.SerializerMethodField()

    class Meta:
        model = Movie
        fields = [
            "id", "title", "original_title", "overview",
            "release_date", "year", "runtime", "director", "cast",
            "genres", "language", "certification",
            "poster_url", "backdrop_url", "trailer_url",
            "imdb_id", "tmdb_id",
            "average_rating", "total_ratings", "rating_distribution",
            "popularity", "view_count", "watchlist_count",
            "top_reviews", "in_watchlist", "user_review",
        ]

    def get_top_reviews(self, obj):
        qs = (
            obj.reviews.filter(is_active=True, moderation_status=Review.ModerationStatus.APPROVED)
            .select_related("user", "movie")
            .order_by("-helpful_votes", "-created_at")[:5]
        )
        return ReviewSerializer(qs, many=True).data

    def get_in_watchlist(self, obj):
        user = _request_user(self)
        if user is None:
            return False
        return obj.watchlisted_by.filter(user=user).exists()

    def get_user_review(self, obj):
        user = _request_user(self)
        if user is None:
            return None
        review = obj.reviews.filter(user=user, is_active=True).select_related("user", "movie").first()
        return ReviewSerializer(review).data if review else None


class MovieWriteSerializer(serializers.ModelSerializer):
    """
    Admin create / update. Aggregate columns are not writable here.
    """
    genres = serializers.SlugRelatedField(
        many=True,
        required=False,
        slug_field="name",
        queryset=Genre.objects.all(),
    )

    class Meta:
        model = Movie
        fields = [
            "id", "title", "original_title", "overview", "release_date",
            "runtime", "director", "cast", "genres", "language",
            "certification", "poster_url", "backdrop_url", "trailer_url",
            "imdb_id", "tmdb_id", "popularity", "is_active",
        ]

    def update(self, instance, validated_data):
        """
        Write only the submitted columns; the aggregate columns may have been
        recomputed since ``instance`` was loaded.
        """
        genres = validated_data.pop("genres", None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data, "updated_at"])
        if genres is not None:
            instance.genres.set(genres)
        return instance

    def validate_title(self, value):
        return value.strip()

    def validate_cast(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Cast must be a list.")
        for member in value:
            if not isinstance(member, dict) or not str(member.get("name", "")).strip():
                raise serializers.ValidationError("Every cast member needs a name.")
        return value


class MovieStatsSerializer(serializers.ModelSerializer):
    class Meta:
        model = Movie
        fields = ["average_rating", "total_ratings", "rating_distribution"]


class ReviewSubmitSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    title = serializers.CharField(min_length=3, max_length=100)
    content = serializers.CharField(min_length=10, max_length=2000)
    spoilers = serializers.BooleanField(required=False, default=False)


class ReviewUpdateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    title = serializers.CharField(min_length=3, max_length=100, required=False)
    content = serializers.CharField(min_length=10, max_length=2000, required=False)
    spoilers = serializers.BooleanField(required=False)


class ReviewFlagSerializer(serializers.Serializer):
    reason = serializers.ChoiceField(choices=settings.REVIEW_FLAG_REASONS)


class ReviewModerationSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[Review.ModerationStatus.APPROVED, Review.ModerationStatus.REJECTED]
    )
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class ReviewVotesSerializer(serializers.ModelSerializer):
    class Meta:
        model = Review
        fields = ["id", "helpful_votes", "total_votes", "helpful_percentage"]


class WatchlistSerializer(serializers.ModelSerializer):
    """
    [
      {
        "id": 3,
        "movie": { ...MovieCard fields... },
        "status": "want_to_watch",
        "priority": "medium",
        ...
      },
      ...
    ]
    """
    movie = MovieCardSerializer(read_only=True)

    class Meta:
        model = Watchlist
        fields = [
            "id", "movie", "status", "priority", "notes",
            "personal_rating", "date_watched", "is_public",
            "added_on", "updated_at",
        ]
        read_only_fields = fields


class WatchlistAddSerializer(serializers.Serializer):
    movie_id = serializers.IntegerField()
    status = serializers.ChoiceField(choices=Watchlist.Status.choices, default=Watchlist.Status.WANT_TO_WATCH)
    priority = serializers.ChoiceField(choices=Watchlist.Priority.choices, default=Watchlist.Priority.MEDIUM)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")


class WatchlistUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Watchlist.Status.choices, required=False)
    priority = serializers.ChoiceField(choices=Watchlist.Priority.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500)
    personal_rating = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)
    is_public = serializers.BooleanField(required=False)


class MarkWatchedSerializer(serializers.Serializer):
    personal_rating = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True)
