"""
Public profile assembly.

A profile passes through two gates. The visibility tier decides whether the
viewer may see anything beyond the identity block; after that every privacy
flag of the owner decides whether its facet is included. Facets that are not
shared are simply absent (or empty lists for the always-present ones), the
payload carries no separate "hidden" markers.

Nothing in here writes to the database.
"""

import logging

from django.contrib.auth import get_user_model

from .analytics import (
    aggregate_genres_from_artists,
    assign_badges,
    bucket_plays_by_hour_and_weekday,
    compute_extended_stats,
)
from .compatibility import calculate_compatibility
from .models import Follow, FollowRequest, ListeningHistory, Profile, UserBadge, get_profile
from .snapshots import load_artists, load_tracks
from .types import BadgeContext, PlayEvent, PrivacyFlags, UserMusicData, ViewerRelationship

logger = logging.getLogger(__name__)

PROFILE_TIME_RANGE = 'medium_term'
TOP_ARTISTS_LIMIT = 10
TOP_TRACKS_LIMIT = 10
TOP_GENRES_LIMIT = 5
PATTERN_HISTORY_LIMIT = 50


def find_user(identifier):
    """Look a user up by public username or by id."""
    profile = Profile.objects.select_related('user').filter(username=str(identifier).lower()).first()
    if profile:
        return profile.user
    if str(identifier).isdigit():
        return get_user_model().objects.filter(pk=int(identifier)).first()
    return None


def _is_authenticated(viewer):
    return viewer is not None and getattr(viewer, 'is_authenticated', False)


def can_view_profile(visibility, is_owner, is_following):
    if is_owner:
        return True
    if visibility == Profile.PUBLIC:
        return True
    if visibility == Profile.FOLLOWERS:
        return is_following
    return False


def get_viewer_relationship(owner, viewer):
    profile = get_profile(owner)
    is_owner = _is_authenticated(viewer) and viewer.pk == owner.pk

    relationship = ViewerRelationship()
    if _is_authenticated(viewer) and not is_owner:
        relationship.is_following = Follow.objects.filter(follower=viewer, following=owner).exists()
        relationship.is_followed_by = Follow.objects.filter(follower=owner, following=viewer).exists()
        relationship.has_pending_request = FollowRequest.objects.filter(
            from_user=viewer, to_user=owner, status=FollowRequest.PENDING,
        ).exists()

    relationship.can_view = can_view_profile(profile.profile_visibility, is_owner, relationship.is_following)
    return relationship


def _public_user(owner, profile):
    return {
        'id': str(owner.pk),
        'name': profile.public_name(),
        'username': profile.username,
        'image': profile.image_url,
        'bio': profile.bio,
        'lastSyncedAt': profile.last_synced_at.isoformat() if profile.last_synced_at else None,
        'followerCount': Follow.objects.filter(following=owner).count(),
        'followingCount': Follow.objects.filter(follower=owner).count(),
    }


def _snapshot_extended_stats(artists, tracks):
    # Public profiles only hold medium-term snapshots: no audio features, no patterns.
    return compute_extended_stats(
        medium_term_tracks=tracks,
        medium_term_artists=artists,
        long_term_artists=artists,
    )


def _earned_badges(owner, artists, tracks, genres):
    badges = assign_badges(BadgeContext(
        top_artists=artists,
        genres=genres,
        unique_artists_count=len(artists),
        unique_tracks_count=len(tracks),
        total_listening_time_ms=0,
    ))
    persisted = dict(
        UserBadge.objects.filter(user=owner, earned_at__isnull=False).values_list('badge_id', 'earned_at')
    )
    for badge in badges:
        badge.earned_at = persisted.get(badge.id, badge.earned_at)
    return [b for b in badges if b.earned_at is not None]


def _listening_patterns(owner):
    history = ListeningHistory.objects.filter(user=owner).order_by('-played_at')[:PATTERN_HISTORY_LIMIT]
    events = [PlayEvent(track_id=h.track_id, duration_ms=h.duration_ms, played_at=h.played_at) for h in history]
    return bucket_plays_by_hour_and_weekday(events)


def _compatibility_with_viewer(viewer, artists, genres, profile_extended):
    viewer_artists = load_artists(viewer, PROFILE_TIME_RANGE)
    if viewer_artists is None:
        return None
    viewer_tracks = load_tracks(viewer, PROFILE_TIME_RANGE) or []

    viewer_data = UserMusicData(
        top_artists=viewer_artists,
        genres=[g.genre for g in aggregate_genres_from_artists(viewer_artists)],
        extended_stats=_snapshot_extended_stats(viewer_artists, viewer_tracks),
    )
    profile_data = UserMusicData(
        top_artists=artists,
        genres=[g.genre for g in genres],
        extended_stats=profile_extended,
    )
    return calculate_compatibility(viewer_data, profile_data)


def build_public_profile(owner, viewer=None):
    """Assemble the privacy-filtered profile of ``owner`` as seen by ``viewer``.

    ``viewer`` may be None or an anonymous user. Returns a JSON-ready dict.
    """
    profile = get_profile(owner)
    relationship = get_viewer_relationship(owner, viewer)

    payload = {
        'user': _public_user(owner, profile),
        'stats': {
            'topArtists': [],
            'topTracks': [],
            'topGenres': [],
            'badges': [],
        },
        'viewerRelationship': relationship.as_dict(),
    }
    if not relationship.can_view:
        return payload

    flags = PrivacyFlags.from_profile(profile)
    artists = load_artists(owner, PROFILE_TIME_RANGE) or []
    tracks = load_tracks(owner, PROFILE_TIME_RANGE) or []
    genres = aggregate_genres_from_artists(artists)
    stats = payload['stats']

    if flags.share_top_artists:
        stats['topArtists'] = [a.as_dict() for a in artists[:TOP_ARTISTS_LIMIT]]
    if flags.share_top_tracks:
        stats['topTracks'] = [t.as_dict() for t in tracks[:TOP_TRACKS_LIMIT]]
    if flags.share_genres:
        stats['topGenres'] = [g.genre for g in genres[:TOP_GENRES_LIMIT]]
    if flags.share_badges:
        stats['badges'] = [b.as_dict() for b in _earned_badges(owner, artists, tracks, genres)]

    if flags.share_listening_stats:
        stats['listeningStats'] = {
            'totalListeningTimeMs': sum(t.duration_ms for t in tracks),
            'uniqueArtists': len({a.id for a in artists}),
            'uniqueTracks': len(tracks),
        }

    extended = None
    if flags.share_audio_profile:
        extended = _snapshot_extended_stats(artists, tracks)
        stats['extendedStats'] = extended.as_dict()

    if flags.share_patterns:
        stats['listeningPatterns'] = [p.as_dict() for p in _listening_patterns(owner)]

    is_owner = _is_authenticated(viewer) and viewer.pk == owner.pk
    if flags.allow_comparison and _is_authenticated(viewer) and not is_owner:
        compatibility = _compatibility_with_viewer(
            viewer, artists, genres, extended or _snapshot_extended_stats(artists, tracks),
        )
        if compatibility is not None:
            payload['compatibility'] = compatibility.as_dict()
        else:
            logger.debug(f"No snapshot for viewer {viewer.username}, skipping compatibility")

    return payload
