import logging

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from movies import aggregates
from movies.exceptions import AggregationWarning
from movies.models import Movie

logger = logging.getLogger(__name__)
User = get_user_model()


class Command(BaseCommand):
    help = (
        "Recompute every movie's rating statistics and watchlist count, and every "
        "user's review / watchlist counters, from the underlying rows."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--movie",
            type=int,
            help="Only recompute this movie (and skip the user counters).",
        )

    def handle(self, *args, **options):
        movie_id = options.get("movie")
        if movie_id:
            try:
                aggregates.recompute_movie_rating(movie_id)
                aggregates.recompute_watchlist_count(movie_id)
            except AggregationWarning as w:
                raise CommandError(str(w))
            self.stdout.write(self.style.SUCCESS(f"Recomputed movie {movie_id}."))
            return

        movie_ids = list(Movie.objects.values_list("id", flat=True))
        total = len(movie_ids)
        self.stdout.write(f"Recomputing aggregates for {total} movies…")
        for idx, pk in enumerate(movie_ids, start=1):
            try:
                aggregates.recompute_movie_rating(pk)
                aggregates.recompute_watchlist_count(pk)
            except AggregationWarning as w:
                # deleted while we were iterating
                logger.warning(str(w))
                continue
            if idx % 500 == 0:
                self.stdout.write(f"  [{idx}/{total}]")

        users = 0
        for user_id in User.objects.values_list("id", flat=True).iterator():
            aggregates.recompute_user_counts(user_id)
            users += 1

        self.stdout.write(self.style.SUCCESS(
            f"Done. Recomputed {total} movies and {users} users."
        ))
