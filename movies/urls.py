# movies/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register(r'movies', views.MovieViewSet, basename='movie')
router.register(r'reviews', views.ReviewViewSet, basename='review')


urlpatterns = [
    path("", include(router.urls)),
    path('genres/', views.GenresView.as_view(), name='genre-list'),
    path('watchlist/', views.WatchlistView.as_view(), name='watchlist'),
    path('watchlist/stats/', views.WatchlistStatsView.as_view(), name='watchlist-stats'),
    path('watchlist/popular/', views.PopularWatchlistView.as_view(), name='watchlist-popular'),
    path('watchlist/<int:movie_id>/', views.WatchlistEntryView.as_view(), name='watchlist-entry'),
    path('watchlist/<int:movie_id>/check/', views.WatchlistCheckView.as_view(), name='watchlist-check'),
    path('watchlist/<int:movie_id>/watched/', views.MarkWatchedView.as_view(), name='watchlist-watched'),
]
