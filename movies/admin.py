from django.contrib import admin
from .models import Genre, Movie, Review, Watchlist


@admin.register(Genre)
class GenreAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'slug']
    search_fields = ['name']
    readonly_fields = ['slug']


@admin.register(Movie)
class MovieAdmin(admin.ModelAdmin):
    list_display = ['title', 'release_date', 'display_genres', 'average_rating',
                    'total_ratings', 'watchlist_count', 'view_count', 'is_active']
    list_filter = ['is_active', 'release_date', 'genres__name']
    search_fields = ['title', 'imdb_id', 'tmdb_id']
    filter_horizontal = ['genres']
    readonly_fields = ['average_rating', 'total_ratings', 'rating_distribution',
                       'watchlist_count', 'view_count', 'created_at', 'updated_at']
    ordering = ['-release_date']

    def display_genres(self, obj):
        return ", ".join([genre.name for genre in obj.genres.all()])
    display_genres.short_description = 'Genres'


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    """
    Read-mostly view of reviews. Moderation goes through the API so that the
    movie statistics are recomputed.
    """
    list_display = ('movie', 'user', 'rating', 'moderation_status', 'is_active', 'created_at')
    list_filter = ('moderation_status', 'is_active', 'rating')
    search_fields = ('movie__title', 'user__email', 'user__username', 'title')
    readonly_fields = [field.name for field in Review._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Watchlist)
class WatchlistAdmin(admin.ModelAdmin):
    list_display = ['user', 'movie', 'status', 'priority', 'added_on']
    list_filter = ['status', 'priority', 'added_on']
    search_fields = ['user__email', 'movie__title']
    readonly_fields = [field.name for field in Watchlist._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
