"""Mirror a user's Spotify listening data into the database."""

import logging
import time
from datetime import timedelta

import requests
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.utils import timezone
from spotipy import SpotifyException

from . import extras
from .analytics import aggregate_genres_from_artists, assign_badges, calculate_total_listening_time
from .analytics.badges import BADGE_DEFINITIONS
from .models import ListeningHistory, SpotifySnapshot, UserBadge, get_profile
from .snapshots import replace_snapshot
from .types import TIME_RANGES, BadgeContext

logger = logging.getLogger(__name__)


def store_listening_history(user, plays):
    """Insert recently-played entries not stored yet. Returns how many were new."""
    created_count = 0
    for play in plays:
        _, created = ListeningHistory.objects.get_or_create(
            user=user,
            track_id=play.track.id,
            played_at=play.played_at,
            defaults={
                'track_name': play.track.name,
                'artist_names': list(play.track.artist_names),
                'album_name': play.track.album_name,
                'duration_ms': play.track.duration_ms,
            },
        )
        if created:
            created_count += 1
    return created_count


def save_snapshots(user, artists_by_range, tracks_by_range):
    """Replace the six (type, time range) snapshots from dicts keyed by time range."""
    for time_range in TIME_RANGES:
        replace_snapshot(user, SpotifySnapshot.ARTISTS, time_range, artists_by_range.get(time_range, []))
        replace_snapshot(user, SpotifySnapshot.TRACKS, time_range, tracks_by_range.get(time_range, []))


def mark_synced(user, when=None):
    profile = get_profile(user)
    profile.last_synced_at = when or timezone.now()
    profile.save(update_fields=['last_synced_at'])
    return profile


def record_badges(user, badges, now=None):
    """Persist badge state: earned badges get a date once, the rest stay locked."""
    now = now or timezone.now()
    earned = {b.id: b.earned_at or now for b in badges}
    for definition in BADGE_DEFINITIONS:
        row, _ = UserBadge.objects.get_or_create(user=user, badge_id=definition.id)
        if definition.id in earned and row.earned_at is None:
            row.earned_at = earned[definition.id]
            row.save(update_fields=['earned_at'])


def sync_user_data(user):
    """Fetch every time range from Spotify and replace the user's snapshots.

    Returns False (and logs) when the user has no usable token, Spotify
    fails or the results cannot be stored; the caller decides whether to retry.
    """
    client = extras.get_spotify_client(user)
    if client is None:
        logger.info(f"No valid token for user {user.username}")
        return False

    try:
        artists = {tr: extras.fetch_top_artists(client, tr, limit=50) for tr in TIME_RANGES}
        tracks = {tr: extras.fetch_top_tracks(client, tr, limit=50) for tr in TIME_RANGES}
        recent = extras.fetch_recently_played(client, limit=50)
    except (SpotifyException, requests.RequestException) as e:
        logger.error(f"Sync error for user {user.username}: {e}")
        return False

    medium_artists = artists['medium_term']
    medium_tracks = tracks['medium_term']
    badges = assign_badges(BadgeContext(
        top_artists=medium_artists,
        genres=aggregate_genres_from_artists(medium_artists),
        unique_artists_count=len({a.id for a in medium_artists}),
        unique_tracks_count=len({t.id for t in medium_tracks}),
        total_listening_time_ms=calculate_total_listening_time([p.as_event() for p in recent]),
    ))

    try:
        with transaction.atomic():
            save_snapshots(user, artists, tracks)
            new_plays = store_listening_history(user, recent)
            record_badges(user, badges)
            mark_synced(user)
    except DatabaseError as e:
        logger.error(f"Could not store sync results for user {user.username}: {e}")
        return False

    logger.info(f"Synced {user.username}: {len(medium_artists)} artists, {len(medium_tracks)} tracks, {new_plays} new plays")
    return True


def get_users_needing_sync(hours_old=24, batch_size=None):
    """Users with a Spotify token whose last sync is older than ``hours_old``."""
    batch_size = batch_size or getattr(settings, 'MIRROR_SYNC_BATCH_SIZE', 50)
    cutoff = timezone.now() - timedelta(hours=hours_old)
    User = get_user_model()
    return list(
        User.objects.filter(is_active=True, spotify_tokens__isnull=False)
        .filter(Q(profile__last_synced_at__isnull=True) | Q(profile__last_synced_at__lt=cutoff))
        .distinct()
        .order_by('id')[:batch_size]
    )


def run_batch_sync(hours_old=24, delay=0.1):
    users = get_users_needing_sync(hours_old)

    successful = 0
    failed = 0
    for user in users:
        if sync_user_data(user):
            successful += 1
        else:
            failed += 1
        # Be courteous with Spotify rate limits
        if delay:
            time.sleep(delay)

    return {
        'total': len(users),
        'successful': successful,
        'failed': failed,
    }
