"""
Rating aggregation and watchlist counting.

Every function here re-reads the complete current record set and rewrites
the derived columns; nothing is ever adjusted incrementally, so concurrent
recomputations for the same movie converge on the same result.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from django.contrib.auth import get_user_model

from movies.exceptions import AggregationWarning
from movies.models import Movie, STAR_BUCKETS, empty_distribution

logger = logging.getLogger(__name__)
User = get_user_model()

ONE_PLACE = Decimal("0.1")


@dataclass(frozen=True)
class RatingSummary:
    count: int = 0
    average: Decimal = Decimal("0.0")
    distribution: dict = field(default_factory=empty_distribution)


def summarize_ratings(ratings):
    """
    Count, mean (rounded half-up to one decimal) and per-star histogram of
    an iterable of integer ratings 1-5. An empty input gives zeros.
    """
    distribution = empty_distribution()
    total = 0
    count = 0
    for rating in ratings:
        distribution[STAR_BUCKETS[int(rating)]] += 1
        total += int(rating)
        count += 1

    if count == 0:
        return RatingSummary()

    average = (Decimal(total) / Decimal(count)).quantize(ONE_PLACE, rounding=ROUND_HALF_UP)
    return RatingSummary(count=count, average=average, distribution=distribution)


def _get_movie(movie_id):
    try:
        return Movie.objects.get(pk=movie_id)
    except Movie.DoesNotExist:
        raise AggregationWarning(movie_id)


def recompute_movie_rating(movie_id):
    """
    Rewrite average_rating, total_ratings and rating_distribution of one movie.
    Raises AggregationWarning when the movie does not exist.
    """
    movie = _get_movie(movie_id)
    summary = movie.update_rating_stats()
    logger.debug(
        f"Movie {movie_id}: average_rating={summary.average} total_ratings={summary.count}"
    )
    return summary


def recompute_watchlist_count(movie_id):
    """
    Rewrite watchlist_count of one movie. Raises AggregationWarning when the
    movie does not exist.
    """
    movie = _get_movie(movie_id)
    count = movie.update_watchlist_count()
    logger.debug(f"Movie {movie_id}: watchlist_count={count}")
    return count


def recompute_user_counts(user_id, reviews=True, watchlist=True):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning(f"User {user_id} not found; counters not recomputed.")
        return None
    if reviews:
        user.update_review_count()
    if watchlist:
        user.update_watchlist_count()
    return user
