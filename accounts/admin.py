from django.contrib import admin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(admin.ModelAdmin):
    """
    Admin interface for the CustomUser model. Users are created through the
    registration endpoint or ``createsuperuser``.
    """
    model = CustomUser

    list_display = ('id', 'email', 'username', 'review_count', 'watchlist_count', 'is_active', 'is_staff')
    list_display_links = ('id', 'email',)
    list_filter = ('is_active', 'is_staff')
    search_fields = ('email', 'username')
    ordering = ('email',)
    filter_horizontal = ('favorite_genres',)
    readonly_fields = ('password', 'date_joined', 'last_login', 'review_count', 'watchlist_count')

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Profile', {'fields': ('username', 'bio', 'profile_picture', 'favorite_genres')}),
        ('Counters', {'fields': ('review_count', 'watchlist_count')}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser',)}),
        ('Important Dates', {'fields': ('date_joined', 'last_login')}),
    )

    def has_add_permission(self, request):
        return False
