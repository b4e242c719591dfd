import logging
import time
from datetime import datetime

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from movies.models import Genre, Movie
from movies.tmdb_client import TMDbClient, TMDbError

logger = logging.getLogger(__name__)

CAST_LIMIT = 10


def parse_date(date_str):
    """Parse YYYY-MM-DD or return None."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except (ValueError, TypeError):
        return None


def image_url(path):
    return f"{settings.TMDB_IMAGE_BASE_URL}{path}" if path else ""


def movie_fields(details):
    """
    Map a TMDB movie-details payload (with credits and videos appended) onto
    Movie columns. Aggregate columns are never part of the result.
    """
    credits = details.get("credits") or {}
    director = next(
        (c.get("name") for c in credits.get("crew", []) if c.get("job") == "Director"),
        "Unknown Director",
    )
    cast = [
        {
            "name": c.get("name", ""),
            "character": c.get("character", ""),
            "profile_path": image_url(c.get("profile_path")),
        }
        for c in credits.get("cast", [])[:CAST_LIMIT]
        if c.get("name")
    ]
    trailers = [
        v for v in (details.get("videos") or {}).get("results", [])
        if v.get("type") == "Trailer" and v.get("site") == "YouTube"
    ]
    return {
        "title": (details.get("title") or "")[:200],
        "original_title": (details.get("original_title") or "")[:200],
        "overview": (details.get("overview") or "")[:2000],
        "release_date": parse_date(details.get("release_date")),
        "runtime": details.get("runtime") or None,
        "director": director,
        "cast": cast,
        "language": details.get("original_language") or "en",
        "poster_url": image_url(details.get("poster_path")),
        "backdrop_url": image_url(details.get("backdrop_path")),
        "trailer_url": f"https://www.youtube.com/watch?v={trailers[0]['key']}" if trailers else "",
        "imdb_id": details.get("imdb_id") or None,
        "popularity": details.get("popularity") or 0,
    }


class Command(BaseCommand):
    help = """
    Import movies from TMDB into the catalogue.

    1) Pull /genre/movie/list to seed the Genre table.
    2) Walk N pages of /movie/{category} and upsert each movie by tmdb_id.
    """

    def add_arguments(self, parser):
        parser.add_argument("--pages", type=int, default=1, help="Number of list pages to import.")
        parser.add_argument(
            "--category",
            choices=["popular", "top_rated"],
            default="popular",
            help="Which TMDB list to import.",
        )
        parser.add_argument(
            "--sleep",
            type=float,
            default=0.25,
            help="Seconds to sleep between TMDB requests (avoid rate-limit).",
        )

    def handle(self, *args, **options):
        client = TMDbClient()
        if not client.configured:
            raise CommandError("Set TMDB_API_KEY or TMDB_ACCESS_TOKEN to import from TMDB.")

        try:
            genre_map = self.sync_genres(client)
        except TMDbError as e:
            raise CommandError(str(e))

        created = updated = skipped = 0
        for page in range(1, options["pages"] + 1):
            try:
                results = client.get_movie_list(options["category"], page=page)
            except TMDbError as e:
                logger.error(str(e))
                break

            for item in results:
                try:
                    details = client.get_movie_details(item["id"])
                except TMDbError as e:
                    logger.error(str(e))
                    skipped += 1
                    continue

                fields = movie_fields(details)
                if not fields["title"] or not fields["release_date"]:
                    self.stdout.write(self.style.WARNING(f"TMDB {item['id']}: missing title or date, skipping."))
                    skipped += 1
                    continue

                with transaction.atomic():
                    movie, was_created = self.upsert_movie(details["id"], fields)
                    names = [g["name"] for g in details.get("genres", []) if g.get("name")]
                    movie.genres.set([genre_map[n] for n in names if n in genre_map])

                if was_created:
                    created += 1
                else:
                    updated += 1
                self.stdout.write(f"[page {page}] {movie.title!r} {'created' if was_created else 'updated'}")
                time.sleep(options["sleep"])

        self.stdout.write(self.style.SUCCESS(
            f"Done. {created} created, {updated} updated, {skipped} skipped."
        ))

    def upsert_movie(self, tmdb_id, fields):
        # Existing rows are saved column by column so aggregates are never written
        movie = Movie.objects.select_for_update().filter(tmdb_id=tmdb_id).first()
        if movie is None:
            return Movie.objects.create(tmdb_id=tmdb_id, **fields), True
        for attr, value in fields.items():
            setattr(movie, attr, value)
        movie.save(update_fields=[*fields, "updated_at"])
        return movie, False

    def sync_genres(self, client):
        genre_map = {}
        for g in client.get_genres():
            genre, _ = Genre.objects.get_or_create(name=g["name"])
            genre_map[genre.name] = genre
        self.stdout.write(f"{len(genre_map)} genres synced.")
        return genre_map
