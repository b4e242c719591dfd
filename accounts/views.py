import logging
from django.contrib.auth import get_user_model
from django.db.models import Q, Sum
from rest_framework import generics, status, permissions, serializers
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView, TokenVerifyView
from django.utils.translation import gettext_lazy as _
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiResponse, OpenApiExample, OpenApiParameter, inline_serializer
)

from movies.aggregates import summarize_ratings
from movies.exceptions import ForbiddenError, NotFoundError, ValidationError
from movies.serializers import ReviewSerializer
from movies.views import sort_reviews
from .serializers import (
    AdminUserSerializer,
    UserRegistrationSerializer,
    CustomTokenObtainPairSerializer,
    PasswordChangeSerializer,
    PublicUserSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)
User = get_user_model()

TOP_USERS_LIMIT = 10
SEARCH_LIMIT = 20


def get_active_user(user_id):
    user = User.objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        raise NotFoundError(_("User not found."))
    return user


@extend_schema(
    summary="Register a new user",
    description="Creates a new account. A taken email or username returns 409.",
    request=UserRegistrationSerializer,
    responses={
        201: OpenApiResponse(
            response=UserSerializer,
            description="User created successfully",
            examples=[
                OpenApiExample(
                    "Success",
                    summary="Created User",
                    value={
                        "id": 17,
                        "username": "jane_smith",
                        "email": "jane.smith@example.com",
                        "bio": "",
                        "favorite_genres": ["Drama", "Thriller"],
                    },
                )
            ],
        ),
        400: OpenApiResponse(description="Validation error"),
        409: OpenApiResponse(description="Email or username already in use"),
    },
    tags=["Authentication"],
)
class UserRegistrationView(generics.CreateAPIView):
    """
    POST /api/auth/register/
    Creates a new user.
    """
    serializer_class = UserRegistrationSerializer
    queryset = User.objects.all()
    permission_classes = [permissions.AllowAny]


@extend_schema(
    summary="Obtain JWT tokens",
    description="Given valid `email` and `password`, returns a pair of JWT tokens.",
    request=inline_serializer(
        name="TokenObtainRequest",
        fields={
            "email": serializers.EmailField(),
            "password": serializers.CharField(style={'input_type': 'password'}),
        },
    ),
    responses={
        200: inline_serializer(
            name="TokenObtainResponse",
            fields={
                "refresh": serializers.CharField(),
                "access": serializers.CharField(),
            }
        ),
        401: OpenApiResponse(description="Invalid credentials"),
    },
    tags=["Authentication"],
)
class CustomTokenObtainPairView(TokenObtainPairView):
    """
    POST /api/auth/login/
    Returns JWT refresh & access tokens.
    """
    serializer_class = CustomTokenObtainPairSerializer


@extend_schema(
    summary="Refresh JWT tokens",
    description="Refresh JWT access tokens using a valid refresh token.",
    responses={
        200: OpenApiResponse(description="Tokens refreshed successfully"),
        401: OpenApiResponse(description="Unauthorized - Invalid refresh token")
    },
    tags=["Authentication"],
)
class CustomTokenRefreshView(TokenRefreshView):
    pass


@extend_schema(
    summary="Verify JWT token",
    description="Verify the validity of a JWT access token.",
    responses={
        200: OpenApiResponse(description="Token is valid"),
        401: OpenApiResponse(description="Unauthorized - Invalid token")
    },
    tags=["Authentication"],
)
class CustomTokenVerifyView(TokenVerifyView):
    pass


@extend_schema(
    summary="Change current user's password",
    description="Authenticated users can change their own password by providing the old and new passwords.",
    request=PasswordChangeSerializer,
    responses={
        200: OpenApiResponse(
            description="Password changed",
            examples=[OpenApiExample("Success", summary="Changed", value={"detail": "Your password has been changed successfully."})]
        ),
        400: OpenApiResponse(description="Validation error"),
    },
    tags=["Profile"],
)
class PasswordChangeView(generics.GenericAPIView):
    """
    POST /api/auth/password-change/
    """
    serializer_class = PasswordChangeSerializer
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(
            {"detail": _("Your password has been changed successfully.")},
            status=status.HTTP_200_OK,
        )


@extend_schema_view(
    get=extend_schema(
        summary="Retrieve current user's profile",
        description="Fetch the profile details of the currently authenticated user.",
        responses={200: UserSerializer},
        tags=["Profile"],
    ),
    patch=extend_schema(
        summary="Update current user's profile",
        description=(
            "Partially update the authenticated user's profile. "
            "Only username, bio, profile_picture and favorite_genres may be modified."
        ),
        request=UserSerializer,
        responses={200: UserSerializer, 409: OpenApiResponse(description="Username already taken")},
        tags=["Profile"],
    ),
)
class UserDetailsView(generics.RetrieveUpdateAPIView):
    """
    GET /api/auth/profile/    → Retrieve your own profile.
    PATCH /api/auth/profile/  → Update allowed fields on your profile.
    """
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        # Always operate on the currently authenticated user
        return self.request.user


@extend_schema(
    summary="Public profile",
    responses={200: PublicUserSerializer, 404: OpenApiResponse(description="No such active user")},
    tags=["Users"],
)
class PublicProfileView(APIView):
    """
    GET /api/users/{id}/
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, user_id):
        return Response(PublicUserSerializer(get_active_user(user_id)).data)


@extend_schema(
    summary="A user's reviews",
    parameters=[
        OpenApiParameter("sort_by", str, description="newest | oldest | rating_high | rating_low | helpful"),
        OpenApiParameter("page", int),
        OpenApiParameter("limit", int),
    ],
    responses={200: ReviewSerializer(many=True)},
    tags=["Users"],
)
class UserReviewsView(generics.ListAPIView):
    """
    GET /api/users/{id}/reviews/
    """
    serializer_class = ReviewSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        user = get_active_user(self.kwargs["user_id"])
        qs = user.reviews.filter(is_active=True).select_related("user", "movie")
        return sort_reviews(self.request, qs, default="newest")


@extend_schema(
    summary="A user's review statistics",
    responses={
        200: inline_serializer(
            name="UserReviewStats",
            fields={
                "total_reviews": serializers.IntegerField(),
                "average_rating": serializers.DecimalField(max_digits=2, decimal_places=1),
                "total_helpful_votes": serializers.IntegerField(),
                "rating_distribution": serializers.DictField(child=serializers.IntegerField()),
            },
        )
    },
    tags=["Users"],
)
class UserReviewStatsView(APIView):
    """
    GET /api/users/{id}/review-stats/
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request, user_id):
        user = get_active_user(user_id)
        reviews = user.reviews.filter(is_active=True)
        summary = summarize_ratings(reviews.values_list("rating", flat=True))
        helpful = reviews.aggregate(total=Sum("helpful_votes"))["total"] or 0
        return Response({
            "total_reviews": summary.count,
            "average_rating": summary.average,
            "total_helpful_votes": helpful,
            "rating_distribution": summary.distribution,
        })


@extend_schema(
    summary="Top reviewers",
    responses={200: PublicUserSerializer(many=True)},
    tags=["Users"],
)
class TopUsersView(APIView):
    """
    GET /api/users/top/
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        users = (
            User.objects.filter(is_active=True, review_count__gt=0)
            .prefetch_related("favorite_genres")
            .order_by("-review_count", "date_joined")[:TOP_USERS_LIMIT]
        )
        return Response(PublicUserSerializer(users, many=True).data)


@extend_schema(
    summary="Search users",
    parameters=[OpenApiParameter("q", str, required=True, description="Username or bio substring")],
    responses={200: PublicUserSerializer(many=True)},
    tags=["Users"],
)
class UserSearchView(APIView):
    """
    GET /api/users/search/?q=
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        query = request.query_params.get("q", "").strip()
        if len(query) < 2:
            raise ValidationError({"q": [_("Search query must be at least 2 characters.")]})
        users = (
            User.objects.filter(is_active=True)
            .filter(Q(username__icontains=query) | Q(bio__icontains=query))
            .order_by("-review_count", "username")[:SEARCH_LIMIT]
        )
        return Response(PublicUserSerializer(users, many=True).data)


@extend_schema(
    summary="List all users",
    responses={200: AdminUserSerializer(many=True)},
    tags=["User Management"],
)
class UserListView(generics.ListAPIView):
    """
    GET /api/users/
    """
    serializer_class = AdminUserSerializer
    queryset = User.objects.all()
    permission_classes = [permissions.IsAdminUser]


@extend_schema(
    summary="Activate or deactivate a user",
    request=None,
    responses={
        200: AdminUserSerializer,
        403: OpenApiResponse(description="Admins cannot deactivate themselves"),
    },
    tags=["User Management"],
)
class ToggleUserStatusView(APIView):
    """
    PATCH /api/users/{id}/toggle-status/
    Users are never deleted, only deactivated.
    """
    permission_classes = [permissions.IsAdminUser]

    def patch(self, request, user_id):
        user = User.objects.filter(pk=user_id).first()
        if user is None:
            raise NotFoundError(_("User not found."))
        if user.pk == request.user.pk:
            raise ForbiddenError(_("You cannot deactivate your own account."))

        user.is_active = not user.is_active
        user.save(update_fields=["is_active", "updated_at"])
        logger.info(
            f"Admin {request.user.pk} {'activated' if user.is_active else 'deactivated'} user {user.pk}"
        )
        return Response(AdminUserSerializer(user).data)
