from django.urls import path
from . import views


urlpatterns = [
    # User registration endpoint
    path('auth/register/', views.UserRegistrationView.as_view(), name='user-registration'),

    # JWT token endpoints
    path('auth/login/', views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token-refresh/', views.CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/token-verify/', views.CustomTokenVerifyView.as_view(), name='token_verify'),

    # The authenticated user's own account
    path('auth/profile/', views.UserDetailsView.as_view(), name='user-details'),
    path('auth/password-change/', views.PasswordChangeView.as_view(), name='password_change'),

    # Public user pages; static segments before <int:user_id>
    path('users/top/', views.TopUsersView.as_view(), name='user-top'),
    path('users/search/', views.UserSearchView.as_view(), name='user-search'),
    path('users/<int:user_id>/', views.PublicProfileView.as_view(), name='user-profile'),
    path('users/<int:user_id>/reviews/', views.UserReviewsView.as_view(), name='user-reviews'),
    path('users/<int:user_id>/review-stats/', views.UserReviewStatsView.as_view(), name='user-review-stats'),

    # Admin user management
    path('users/', views.UserListView.as_view(), name='user-list'),
    path('users/<int:user_id>/toggle-status/', views.ToggleUserStatusView.as_view(), name='user-toggle-status'),
]
