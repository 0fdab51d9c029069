"""Read and replace persisted top-artist / top-track snapshots."""

from django.utils import timezone

from .models import SpotifySnapshot
from .types import ArtistSummary, TrackSummary


def replace_snapshot(user, snapshot_type, time_range, items):
    """Overwrite the (user, type, time range) slice with ``items``.

    Idempotent: running it twice with the same items leaves one row with the
    same content. Nothing from the previous snapshot survives.
    """
    snapshot, _ = SpotifySnapshot.objects.update_or_create(
        user=user,
        type=snapshot_type,
        time_range=time_range,
        defaults={
            'data': [item.as_dict() for item in items],
            'created_at': timezone.now(),
        },
    )
    return snapshot


def _load(user, snapshot_type, time_range):
    snapshot = SpotifySnapshot.objects.filter(user=user, type=snapshot_type, time_range=time_range).first()
    if snapshot is None:
        return None
    return snapshot.data or []


def load_artists(user, time_range='medium_term'):
    """Stored artists, or None when the user was never synced for this range."""
    data = _load(user, SpotifySnapshot.ARTISTS, time_range)
    if data is None:
        return None
    return [ArtistSummary.from_dict(a) for a in data]


def load_tracks(user, time_range='medium_term'):
    data = _load(user, SpotifySnapshot.TRACKS, time_range)
    if data is None:
        return None
    return [TrackSummary.from_dict(t) for t in data]
