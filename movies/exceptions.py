from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotFound,
    PermissionDenied,
    ValidationError,
)

__all__ = [
    "AggregationWarning",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
]


class ConflictError(APIException):
    """
    A uniqueness rule was violated: duplicate review or watchlist entry,
    duplicate username or email.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = _("This resource already exists.")
    default_code = "conflict"


class NotFoundError(NotFound):
    default_detail = _("The requested resource does not exist.")


class ForbiddenError(PermissionDenied):
    default_detail = _("You are not allowed to perform this action.")


class AggregationWarning(Exception):
    """
    Raised when a movie's aggregates cannot be recomputed because the movie
    is gone. Never surfaced to API clients; receivers log it and move on.
    """

    def __init__(self, movie_id, message=None):
        self.movie_id = movie_id
        super().__init__(message or f"Movie {movie_id} not found; aggregates not recomputed.")
