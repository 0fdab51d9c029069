from django.db import models
from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone

from .types import PRIVACY_FIELDS


class Profile(models.Model):
    PUBLIC = 'PUBLIC'
    FOLLOWERS = 'FOLLOWERS'
    PRIVATE = 'PRIVATE'

    VISIBILITY_CHOICES = (
        (PUBLIC, 'Public'),
        (FOLLOWERS, 'Followers only'),
        (PRIVATE, 'Private'),
    )

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile')
    spotify_id = models.CharField(max_length=128, unique=True, blank=True, null=True)
    display_name = models.CharField(max_length=255, blank=True, default='')
    # Public handle, chosen in settings. Stored lower-case; profiles can also be reached by user id.
    username = models.CharField(max_length=20, unique=True, blank=True, null=True)
    image_url = models.URLField(max_length=500, blank=True, null=True)
    bio = models.CharField(max_length=160, blank=True, null=True)
    profile_visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default=PUBLIC)
    has_completed_onboarding = models.BooleanField(default=False)

    # Per-facet privacy flags. Only the owner changes these.
    share_top_artists = models.BooleanField(default=True)
    share_top_tracks = models.BooleanField(default=True)
    share_genres = models.BooleanField(default=True)
    share_audio_profile = models.BooleanField(default=True)
    share_badges = models.BooleanField(default=True)
    share_listening_stats = models.BooleanField(default=True)
    share_patterns = models.BooleanField(default=True)
    share_recently_played = models.BooleanField(default=True)
    allow_comparison = models.BooleanField(default=True)

    last_synced_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def public_name(self):
        return self.display_name or self.username or "Unknown"

    def privacy_dict(self):
        return {name: getattr(self, name) for name in PRIVACY_FIELDS}

    def __str__(self):
        return f"Profile({self.user.username})"


class spotifyToken(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="spotify_tokens")
    created_at = models.DateTimeField(auto_now_add=True)
    access_token = models.TextField()
    refresh_token = models.TextField()
    expires_in = models.DateTimeField()
    token_type = models.CharField(max_length=50)

    def __str__(self):
        return self.user.username


class Follow(models.Model):
    follower = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='following_set', on_delete=models.CASCADE)
    following = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='follower_set', on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('follower', 'following')
        ordering = ['-created_at']

    def __str__(self):
        return f"Follow({self.follower.username} -> {self.following.username})"


class FollowRequest(models.Model):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'

    STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (REJECTED, 'Rejected'),
    )

    from_user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='follow_requests_sent', on_delete=models.CASCADE)
    to_user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name='follow_requests_received', on_delete=models.CASCADE)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('from_user', 'to_user')
        ordering = ['-created_at']

    def __str__(self):
        return f"FollowRequest({self.from_user.username} -> {self.to_user.username}: {self.status})"


class SpotifySnapshot(models.Model):
    """A user's top-artists or top-tracks list for one time range.

    One row per (user, type, time range). A sync replaces the whole ``data``
    blob; rows are never merged.
    """
    ARTISTS = 'artists'
    TRACKS = 'tracks'

    TYPE_CHOICES = (
        (ARTISTS, 'Artists'),
        (TRACKS, 'Tracks'),
    )

    TIME_RANGE_CHOICES = (
        ('short_term', 'Last 4 Weeks'),
        ('medium_term', 'Last 6 Months'),
        ('long_term', 'All Time'),
    )

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='spotify_snapshots')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    time_range = models.CharField(max_length=12, choices=TIME_RANGE_CHOICES)
    data = models.JSONField(default=list)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = ('user', 'type', 'time_range')

    def __str__(self):
        return f"SpotifySnapshot({self.user.username} {self.type} {self.time_range})"


class ListeningHistory(models.Model):
    """One recently-played entry. Source of the listening-pattern heatmap."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='listening_history')
    track_id = models.CharField(max_length=128)
    track_name = models.CharField(max_length=500, blank=True, default='')
    artist_names = models.JSONField(default=list)
    album_name = models.CharField(max_length=500, blank=True, default='')
    played_at = models.DateTimeField(db_index=True)
    duration_ms = models.IntegerField(default=0)

    class Meta:
        unique_together = ('user', 'track_id', 'played_at')
        ordering = ['-played_at']

    def __str__(self):
        return f"ListeningHistory({self.user.username} {self.track_id} @ {self.played_at})"


class UserBadge(models.Model):
    """Persisted badge state. ``earned_at`` is null while the badge is locked."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='badges')
    badge_id = models.CharField(max_length=50)
    earned_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        unique_together = ('user', 'badge_id')

    def __str__(self):
        return f"UserBadge({self.user.username} {self.badge_id})"


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def user_post_save(sender, instance, created, **kwargs):
    if created:
        Profile.objects.get_or_create(user=instance)


def get_profile(user):
    profile, _ = Profile.objects.get_or_create(user=user)
    return profile
