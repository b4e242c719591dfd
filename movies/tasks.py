import logging

from celery import shared_task

from movies import aggregates
from movies.exceptions import AggregationWarning

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def recompute_movie_aggregates(self, movie_id):
    """
    Celery task: recompute a movie's rating statistics and watchlist count
    after the inline recompute failed. Retries up to 3 times.
    """
    try:
        aggregates.recompute_movie_rating(movie_id)
        aggregates.recompute_watchlist_count(movie_id)
        logger.info(f"Aggregates recomputed out-of-band for movie {movie_id}.")
    except AggregationWarning as w:
        logger.warning(str(w))
    except Exception as exc:
        logger.exception(f"Error recomputing aggregates for movie {movie_id}: {exc}")
        raise self.retry(exc=exc)
