# movies/views.py

from django.db.models import Case, Count, IntegerField, Q, Value, When
from rest_framework import generics, permissions, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import (
    extend_schema,
    extend_schema_view,
    OpenApiResponse,
    OpenApiParameter,
    inline_serializer,
)

from movies import services
from movies.aggregates import summarize_ratings
from movies.exceptions import ValidationError
from movies.models import Genre, Movie, Review, Watchlist
from movies.pagination import StandardResultsPagination
from movies.serializers import (
    GenreSerializer,
    MarkWatchedSerializer,
    MovieCardSerializer,
    MovieDetailSerializer,
    MovieMiniSerializer,
    MovieStatsSerializer,
    MovieWriteSerializer,
    ReviewFlagSerializer,
    ReviewModerationSerializer,
    ReviewSerializer,
    ReviewSubmitSerializer,
    ReviewUpdateSerializer,
    ReviewVotesSerializer,
    WatchlistAddSerializer,
    WatchlistSerializer,
    WatchlistUpdateSerializer,
)

MOVIE_SORTS = {
    "newest": ("-created_at",),
    "rating": ("-average_rating", "-total_ratings"),
    "year": ("-release_date",),
    "popularity": ("-popularity",),
    "title": ("title",),
}

REVIEW_SORTS = {
    "helpful": ("-helpful_votes", "-created_at"),
    "newest": ("-created_at",),
    "oldest": ("created_at",),
    "rating_high": ("-rating", "-created_at"),
    "rating_low": ("rating", "-created_at"),
}

WATCHLIST_SORTS = {
    "added": ("-added_on",),
    "rating": ("-personal_rating", "-added_on"),
    "priority": ("priority_rank", "-added_on"),
    "date_watched": ("-date_watched", "-added_on"),
}


def choice_param(request, name, choices, default):
    value = request.query_params.get(name, default)
    if value not in choices:
        raise ValidationError({name: [f"Must be one of: {', '.join(choices)}."]})
    return value


def number_param(request, name, cast=int, minimum=None, maximum=None):
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return None
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ValidationError({name: ["Must be a number."]})
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise ValidationError({name: [f"Must be between {minimum} and {maximum}."]})
    return value


def sort_reviews(request, qs, default="helpful"):
    sort_by = choice_param(request, "sort_by", REVIEW_SORTS, default)
    return qs.order_by(*REVIEW_SORTS[sort_by])


@extend_schema(
    summary="Genres",
    description="List every genre.",
    responses={200: GenreSerializer(many=True)},
    tags=["Movies"],
)
class GenresView(generics.ListAPIView):
    """
    GET /api/genres/
    """
    serializer_class = GenreSerializer
    queryset = Genre.objects.all()
    permission_classes = [permissions.AllowAny]
    pagination_class = None


@extend_schema_view(
    list=extend_schema(
        summary="Browse movies",
        description="Active movies, filtered and sorted, paginated with `page` and `limit`.",
        parameters=[
            OpenApiParameter("q", str, description="Substring of title or overview"),
            OpenApiParameter("genre", str, description="Genre slug or name"),
            OpenApiParameter("year", int, description="Release year"),
            OpenApiParameter("min_rating", float, description="Minimum average rating (0-5)"),
            OpenApiParameter("sort_by", str, enum=list(MOVIE_SORTS), description="Ordering"),
        ],
        tags=["Movies"],
    ),
    retrieve=extend_schema(
        summary="Retrieve Movie Detail",
        description=(
            "Full details for a single movie, its rating statistics, the five most helpful "
            "reviews and, when authenticated, your watchlist status and review. "
            "Each call counts as one view."
        ),
        responses={200: MovieDetailSerializer},
        tags=["Movies"],
    ),
    create=extend_schema(summary="Add a movie (admin)", tags=["Movies"]),
    update=extend_schema(summary="Replace a movie (admin)", tags=["Movies"]),
    partial_update=extend_schema(summary="Update a movie (admin)", tags=["Movies"]),
    destroy=extend_schema(
        summary="Deactivate a movie (admin)",
        description="Soft delete: the movie is hidden, its reviews and watchlist entries are kept.",
        responses={204: OpenApiResponse(description="Deactivated")},
        tags=["Movies"],
    ),
    featured=extend_schema(
        summary="Featured movies",
        description="Ten most popular and ten best rated active movies.",
        responses={
            200: inline_serializer(
                name="FeaturedMovies",
                fields={
                    "popular": MovieCardSerializer(many=True),
                    "top_rated": MovieCardSerializer(many=True),
                },
            )
        },
        tags=["Movies"],
    ),
    reviews=extend_schema(
        summary="Movie reviews",
        description=(
            "GET: approved reviews of this movie, sortable by `sort_by`.\n"
            "\nPOST: submit your review. A user reviews a movie once; a second "
            "submission returns 409 and the existing review must be updated instead."
        ),
        parameters=[
            OpenApiParameter("sort_by", str, enum=list(REVIEW_SORTS), description="Ordering (GET)"),
        ],
        request=ReviewSubmitSerializer,
        responses={
            200: ReviewSerializer(many=True),
            201: inline_serializer(
                name="ReviewSubmitted",
                fields={
                    "review": ReviewSerializer(),
                    "movie_stats": MovieStatsSerializer(),
                },
            ),
            409: OpenApiResponse(description="You have already reviewed this movie"),
        },
        tags=["Reviews"],
    ),
)
class MovieViewSet(viewsets.ModelViewSet):
    """
    list / retrieve: anyone.
    create / update / destroy: admins only; destroy deactivates.

    reviews:
    GET the movie's reviews; POST to submit one.
    """
    lookup_value_regex = r"\d+"
    permission_classes = [permissions.AllowAny]
    write_actions = ("create", "update", "partial_update", "destroy")

    def get_permissions(self):
        if self.action in self.write_actions:
            return [permissions.IsAdminUser()]
        if self.action == "reviews" and self.request.method == "POST":
            return [permissions.IsAuthenticated()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action in self.write_actions:
            return MovieWriteSerializer
        if self.action == "retrieve":
            return MovieDetailSerializer
        return MovieMiniSerializer

    def get_queryset(self):
        if self.action in self.write_actions:
            return Movie.objects.prefetch_related("genres")

        qs = Movie.objects.filter(is_active=True).prefetch_related("genres")
        if self.action != "list":
            return qs

        params = self.request.query_params
        q = params.get("q", "").strip()
        if q:
            qs = qs.filter(Q(title__icontains=q) | Q(overview__icontains=q))

        genre = params.get("genre", "").strip()
        if genre and genre != "all":
            qs = qs.filter(Q(genres__slug=genre) | Q(genres__name__iexact=genre)).distinct()

        year = number_param(self.request, "year", minimum=1800, maximum=3000)
        if year:
            qs = qs.filter(release_date__year=year)

        min_rating = number_param(self.request, "min_rating", cast=float, minimum=0, maximum=5)
        if min_rating is not None:
            qs = qs.filter(average_rating__gte=min_rating)

        sort_by = choice_param(self.request, "sort_by", MOVIE_SORTS, "newest")
        return qs.order_by(*MOVIE_SORTS[sort_by])

    def retrieve(self, request, *args, **kwargs):
        services.increment_view_count(kwargs[self.lookup_field])
        movie = self.get_object()
        serializer = self.get_serializer(movie)
        return Response(serializer.data)

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def perform_destroy(self, instance):
        instance.is_active = False
        instance.save(update_fields=["is_active", "updated_at"])

    @action(detail=False, methods=["get"], url_path="featured")
    def featured(self, request):
        qs = Movie.objects.filter(is_active=True).prefetch_related("genres")
        return Response({
            "popular": MovieCardSerializer(qs.order_by("-popularity", "-average_rating")[:10], many=True).data,
            "top_rated": MovieCardSerializer(qs.order_by("-average_rating", "-total_ratings")[:10], many=True).data,
        })

    @action(detail=True, methods=["get", "post"], url_path="reviews")
    def reviews(self, request, pk=None):
        movie = self.get_object()

        if request.method == "POST":
            serializer = ReviewSubmitSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            review = services.submit_review(request.user, movie.pk, **serializer.validated_data)
            movie.refresh_from_db()
            return Response(
                {
                    "review": ReviewSerializer(review).data,
                    "movie_stats": MovieStatsSerializer(movie).data,
                },
                status=status.HTTP_201_CREATED,
            )

        qs = movie.reviews.filter(
            is_active=True, moderation_status=Review.ModerationStatus.APPROVED
        ).select_related("user", "movie")
        qs = sort_reviews(request, qs)
        page = self.paginate_queryset(qs)
        return self.get_paginated_response(ReviewSerializer(page, many=True).data)


@extend_schema(tags=["Reviews"])
@extend_schema_view(
    retrieve=extend_schema(summary="Retrieve a review", responses={200: ReviewSerializer}),
    partial_update=extend_schema(
        summary="Update a review",
        description="Change rating, title, content or spoilers of your review (admins: any review).",
        request=ReviewUpdateSerializer,
        responses={200: ReviewSerializer},
    ),
    destroy=extend_schema(
        summary="Delete a review",
        description="Soft delete your review (admins: any review).",
        responses={204: OpenApiResponse(description="Deleted")},
    ),
    helpful=extend_schema(
        summary="Mark helpful",
        request=None,
        responses={200: ReviewVotesSerializer, 403: OpenApiResponse(description="Own review")},
    ),
    not_helpful=extend_schema(
        summary="Mark not helpful",
        request=None,
        responses={200: ReviewVotesSerializer, 403: OpenApiResponse(description="Own review")},
    ),
    flag=extend_schema(
        summary="Flag a review",
        description="Reasons: spam, inappropriate, spoiler. Enough flags hold the review for moderation.",
        request=ReviewFlagSerializer,
        responses={200: ReviewSerializer},
    ),
    moderate=extend_schema(
        summary="Moderate a review (admin)",
        description="Approve or reject a held review, or reinstate a rejected one.",
        request=ReviewModerationSerializer,
        responses={200: ReviewSerializer},
    ),
    stats=extend_schema(
        summary="Platform review statistics",
        description="Count, mean rating and per-star distribution of all approved reviews.",
        responses={
            200: inline_serializer(
                name="ReviewStats",
                fields={
                    "total_reviews": serializers.IntegerField(),
                    "average_rating": serializers.DecimalField(max_digits=2, decimal_places=1),
                    "rating_distribution": serializers.DictField(child=serializers.IntegerField()),
                },
            )
        },
    ),
)
class ReviewViewSet(viewsets.GenericViewSet):
    """
    GET    /api/reviews/stats/
    GET    /api/reviews/{id}/
    PATCH  /api/reviews/{id}/
    DELETE /api/reviews/{id}/
    POST   /api/reviews/{id}/helpful/ | not-helpful/ | flag/ | moderate/
    """
    queryset = Review.objects.filter(is_active=True).select_related("user", "movie")
    serializer_class = ReviewSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]
    lookup_value_regex = r"\d+"
    http_method_names = ["get", "patch", "delete", "post", "head", "options"]

    def get_permissions(self):
        if self.action == "moderate":
            return [permissions.IsAdminUser()]
        return super().get_permissions()

    def retrieve(self, request, pk=None):
        return Response(self.get_serializer(self.get_object()).data)

    def partial_update(self, request, pk=None):
        serializer = ReviewUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = services.update_review(request.user, pk, serializer.validated_data)
        return Response(ReviewSerializer(review).data)

    def destroy(self, request, pk=None):
        services.delete_review(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        ratings = Review.objects.filter(
            is_active=True, moderation_status=Review.ModerationStatus.APPROVED
        ).values_list("rating", flat=True)
        summary = summarize_ratings(ratings)
        return Response({
            "total_reviews": summary.count,
            "average_rating": summary.average,
            "rating_distribution": summary.distribution,
        })

    @action(detail=True, methods=["post"], url_path="helpful")
    def helpful(self, request, pk=None):
        review = services.mark_helpful(request.user, pk)
        return Response(ReviewVotesSerializer(review).data)

    @action(detail=True, methods=["post"], url_path="not-helpful")
    def not_helpful(self, request, pk=None):
        review = services.mark_not_helpful(request.user, pk)
        return Response(ReviewVotesSerializer(review).data)

    @action(detail=True, methods=["post"], url_path="flag")
    def flag(self, request, pk=None):
        serializer = ReviewFlagSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = services.flag_review(request.user, pk, serializer.validated_data["reason"])
        return Response(ReviewSerializer(review).data)

    @action(detail=True, methods=["post"], url_path="moderate")
    def moderate(self, request, pk=None):
        serializer = ReviewModerationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = services.moderate_review(
            request.user,
            pk,
            serializer.validated_data["status"],
            serializer.validated_data.get("reason", ""),
        )
        return Response(ReviewSerializer(review).data)


@extend_schema(
    summary="User watchlist",
    description=(
        "GET: list your watchlist (filter `status`, sort `sort_by`)\n"
        "POST: add a movie to your watchlist"
    ),
    parameters=[
        OpenApiParameter("status", str, enum=[*Watchlist.Status.values, "all"]),
        OpenApiParameter("sort_by", str, enum=list(WATCHLIST_SORTS)),
    ],
    request=WatchlistAddSerializer,
    responses={
        200: WatchlistSerializer(many=True),
        201: WatchlistSerializer,
        409: OpenApiResponse(description="Movie already in watchlist"),
    },
    tags=["Watchlist"],
)
class WatchlistView(APIView):
    """
    Manage the current user’s watchlist.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        items = Watchlist.objects.filter(user=request.user, movie__is_active=True) \
            .select_related('movie') \
            .prefetch_related('movie__genres')

        status_filter = choice_param(request, "status", [*Watchlist.Status.values, "all"], "all")
        if status_filter != "all":
            items = items.filter(status=status_filter)

        sort_by = choice_param(request, "sort_by", WATCHLIST_SORTS, "added")
        items = items.annotate(
            priority_rank=Case(
                When(priority=Watchlist.Priority.HIGH, then=Value(0)),
                When(priority=Watchlist.Priority.MEDIUM, then=Value(1)),
                default=Value(2),
                output_field=IntegerField(),
            )
        ).order_by(*WATCHLIST_SORTS[sort_by])

        paginator = StandardResultsPagination()
        page = paginator.paginate_queryset(items, request, view=self)
        return paginator.get_paginated_response(WatchlistSerializer(page, many=True).data)

    def post(self, request):
        serializer = WatchlistAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.add_to_watchlist(request.user, **serializer.validated_data)
        return Response(WatchlistSerializer(entry).data, status=status.HTTP_201_CREATED)


@extend_schema(
    summary="Check watchlist",
    description="Whether this movie is in your watchlist, with the entry if so.",
    responses={
        200: inline_serializer(
            name="WatchlistCheck",
            fields={"in_watchlist": serializers.BooleanField(), "entry": WatchlistSerializer(allow_null=True)},
        )
    },
    tags=["Watchlist"],
)
class WatchlistCheckView(APIView):
    """
    GET /api/watchlist/{movie_id}/check/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, movie_id):
        entry = Watchlist.objects.filter(user=request.user, movie_id=movie_id).select_related("movie").first()
        return Response({
            "in_watchlist": entry is not None,
            "entry": WatchlistSerializer(entry).data if entry else None,
        })


@extend_schema(tags=["Watchlist"])
@extend_schema_view(
    get=extend_schema(summary="Retrieve watchlist entry", responses={200: WatchlistSerializer}),
    patch=extend_schema(
        summary="Update watchlist entry",
        request=WatchlistUpdateSerializer,
        responses={200: WatchlistSerializer},
    ),
    delete=extend_schema(
        summary="Remove from watchlist",
        responses={204: OpenApiResponse(description="Removed from watchlist")},
    ),
)
class WatchlistEntryView(APIView):
    """
    GET / PATCH / DELETE /api/watchlist/{movie_id}/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, movie_id):
        entry = services.get_watchlist_entry(request.user, movie_id)
        return Response(WatchlistSerializer(entry).data)

    def patch(self, request, movie_id):
        serializer = WatchlistUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.update_watchlist_entry(request.user, movie_id, serializer.validated_data)
        return Response(WatchlistSerializer(entry).data)

    def delete(self, request, movie_id):
        services.remove_from_watchlist(request.user, movie_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(
    summary="Mark as watched",
    description="Set status to watched, stamp the watch date and optionally record your rating.",
    request=MarkWatchedSerializer,
    responses={200: WatchlistSerializer},
    tags=["Watchlist"],
)
class MarkWatchedView(APIView):
    """
    POST /api/watchlist/{movie_id}/watched/
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, movie_id):
        serializer = MarkWatchedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.mark_watched(
            request.user, movie_id, serializer.validated_data.get("personal_rating")
        )
        return Response(WatchlistSerializer(entry).data)


@extend_schema(
    summary="Watchlist statistics",
    responses={
        200: inline_serializer(
            name="WatchlistStats",
            fields={
                "want_to_watch": serializers.IntegerField(),
                "watching": serializers.IntegerField(),
                "watched": serializers.IntegerField(),
                "total": serializers.IntegerField(),
            },
        )
    },
    tags=["Watchlist"],
)
class WatchlistStatsView(APIView):
    """
    GET /api/watchlist/stats/
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        result = {value: 0 for value in Watchlist.Status.values}
        rows = (
            Watchlist.objects.filter(user=request.user)
            .values("status")
            .annotate(count=Count("id"))
        )
        for row in rows:
            result[row["status"]] = row["count"]
        result["total"] = sum(result.values())
        return Response(result)


@extend_schema(
    summary="Most watchlisted movies",
    parameters=[OpenApiParameter("limit", int, description="1-50, default 10")],
    responses={200: MovieCardSerializer(many=True)},
    tags=["Watchlist"],
)
class PopularWatchlistView(APIView):
    """
    GET /api/watchlist/popular/
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        limit = number_param(request, "limit", minimum=1, maximum=50) or 10
        qs = (
            Movie.objects.filter(is_active=True, watchlist_count__gt=0)
            .prefetch_related("genres")
            .order_by("-watchlist_count", "-average_rating")[:limit]
        )
        data = [
            {**MovieCardSerializer(movie).data, "watchlist_count": movie.watchlist_count}
            for movie in qs
        ]
        return Response({"movies": data})
