from django.contrib import admin
from .models import Follow, FollowRequest, ListeningHistory, Profile, SpotifySnapshot, UserBadge, spotifyToken

# Register your models here.
@admin.register(spotifyToken)
class SpotifyTokenAdmin(admin.ModelAdmin):
    list_display = ("user", "token_type", "expires_in", "created_at")
    search_fields = ("user__username",)

@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "username", "display_name", "profile_visibility", "last_synced_at")
    list_filter = ("profile_visibility",)
    search_fields = ("user__username", "username", "display_name")

@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ("follower", "following", "created_at")
    search_fields = ("follower__username", "following__username")

@admin.register(FollowRequest)
class FollowRequestAdmin(admin.ModelAdmin):
    list_display = ("from_user", "to_user", "status", "created_at")
    list_filter = ("status",)

@admin.register(SpotifySnapshot)
class SpotifySnapshotAdmin(admin.ModelAdmin):
    list_display = ("user", "type", "time_range", "created_at")
    list_filter = ("type", "time_range")

@admin.register(ListeningHistory)
class ListeningHistoryAdmin(admin.ModelAdmin):
    list_display = ("user", "track_name", "played_at")
    search_fields = ("user__username", "track_name")

@admin.register(UserBadge)
class UserBadgeAdmin(admin.ModelAdmin):
    list_display = ("user", "badge_id", "earned_at")
