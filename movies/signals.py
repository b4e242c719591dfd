# movies/signals.py
#
# Domain events published by movies.services once a review or watchlist
# mutation has committed. Receivers run synchronously in the same request.

import logging

from django.dispatch import Signal, receiver

from movies import aggregates
from movies.exceptions import AggregationWarning

logger = logging.getLogger(__name__)

# Sent with movie_id and user_id
review_changed = Signal()
watchlist_changed = Signal()


def _queue_retry(movie_id):
    from movies.tasks import recompute_movie_aggregates

    try:
        recompute_movie_aggregates.delay(movie_id)
    except Exception as e:
        logger.error(f"Could not queue aggregate retry for movie {movie_id}: {e}")


@receiver(review_changed)
def update_movie_rating_after_review_change(sender, movie_id, user_id, **kwargs):
    """
    Whenever a Review is created, updated, moderated or deleted,
    recalculate its movie's rating statistics and the author's review count.
    """
    try:
        aggregates.recompute_movie_rating(movie_id)
    except AggregationWarning as w:
        logger.warning(str(w))
    except Exception as e:
        logger.exception(f"Failed to update rating stats for movie {movie_id}: {e}")
        _queue_retry(movie_id)

    try:
        aggregates.recompute_user_counts(user_id, watchlist=False)
    except Exception as e:
        logger.exception(f"Failed to update review count for user {user_id}: {e}")


@receiver(watchlist_changed)
def update_watchlist_count_after_change(sender, movie_id, user_id, **kwargs):
    """
    Whenever a Watchlist entry is added or removed,
    recount the movie's and the user's watchlist entries.
    """
    try:
        aggregates.recompute_watchlist_count(movie_id)
    except AggregationWarning as w:
        logger.warning(str(w))
    except Exception as e:
        logger.exception(f"Failed to update watchlist count for movie {movie_id}: {e}")
        _queue_retry(movie_id)

    try:
        aggregates.recompute_user_counts(user_id, reviews=False)
    except Exception as e:
        logger.exception(f"Failed to update watchlist count for user {user_id}: {e}")
