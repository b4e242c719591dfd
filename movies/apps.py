from django.apps import AppConfig


class MoviesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "movies"

    def ready(self):
        # Connect the aggregate-maintenance receivers
        from . import signals  # noqa: F401
