import logging
from datetime import timedelta

import requests
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from spotipy import Spotify, SpotifyException

from .credentials import CLIENT_ID, CLIENT_SECRET
from .models import spotifyToken
from .types import ArtistSummary, AudioFeatures, RecentPlay, TrackSummary

logger = logging.getLogger(__name__)

TOKEN_URL = "https://accounts.spotify.com/api/token"
# refresh a little before the provider's expiry so in-flight requests don't fail
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
AUDIO_FEATURES_CHUNK = 100
REQUEST_TIMEOUT = 15


def check_spotifyTokens(user):
    return spotifyToken.objects.filter(user=user).first()


def create_or_update_spotifyTokens(user, access_token, refresh_token, expires_in, token_type):
    tokens, created = spotifyToken.objects.get_or_create(
        user=user,
        defaults={
            'access_token': access_token,
            'refresh_token': refresh_token,
            'expires_in': expires_in,
            'token_type': token_type
        }
    )

    if not created:
        tokens.access_token = access_token
        tokens.refresh_token = refresh_token
        tokens.expires_in = expires_in
        tokens.token_type = token_type
        tokens.save(update_fields=['access_token', 'refresh_token', 'expires_in', 'token_type'])
    return tokens


def is_spotify_authenticated(user):
    tokens = check_spotifyTokens(user)
    if tokens:
        if tokens.expires_in <= timezone.now() + TOKEN_REFRESH_MARGIN:
            return refresh_spotify_token(user)
        return True
    return False


def refresh_spotify_token(user):
    tokens = check_spotifyTokens(user)
    if not tokens or not tokens.refresh_token:
        return False

    try:
        response = requests.post(TOKEN_URL, data={
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token,
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET
        }, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"Token refresh request failed for {user.username}: {e}")
        return False

    if not response.ok:
        logger.error(f"Token refresh failed for {user.username}: {response.status_code} {response.text[:200]}")
        return False

    payload = response.json()
    access_token = payload.get('access_token')
    token_type = payload.get('token_type')
    expires_in = payload.get('expires_in', 3600)

    if not (access_token and token_type):
        logger.error(f"Token refresh for {user.username} returned no access token")
        return False

    create_or_update_spotifyTokens(
        user=user,
        access_token=access_token,
        # Spotify only sometimes rotates the refresh token
        refresh_token=payload.get('refresh_token') or tokens.refresh_token,
        expires_in=timezone.now() + timedelta(seconds=expires_in),
        token_type=token_type
    )
    return True


def get_token(user):
    """Return a usable access token for ``user``, refreshing it if needed."""
    if not is_spotify_authenticated(user):
        return None
    tokens = check_spotifyTokens(user)
    return tokens.access_token if tokens else None


def get_spotify_client(user):
    token = get_token(user)
    if not token:
        return None
    return Spotify(auth=token, requests_timeout=REQUEST_TIMEOUT)


# --- normalisation of raw provider JSON ---

def first_image_url(images):
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get('url')
    return None


def _spotify_url(external_urls):
    if isinstance(external_urls, dict):
        return external_urls.get('spotify') or ''
    return ''


def normalize_artist(artist):
    return ArtistSummary(
        id=artist.get('id') or '',
        name=artist.get('name') or '',
        image_url=first_image_url(artist.get('images')),
        genres=list(artist.get('genres') or []),
        popularity=artist.get('popularity', 0),
        spotify_url=_spotify_url(artist.get('external_urls')),
    )


def normalize_track(track):
    album = track.get('album') or {}
    return TrackSummary(
        id=track.get('id') or '',
        name=track.get('name') or '',
        artist_names=[a.get('name') for a in track.get('artists', []) if a.get('name')],
        album_id=album.get('id') or '',
        album_name=album.get('name') or '',
        album_image_url=first_image_url(album.get('images')),
        album_spotify_url=_spotify_url(album.get('external_urls')),
        duration_ms=track.get('duration_ms', 0),
        popularity=track.get('popularity', 0),
        release_date=album.get('release_date') or None,
        spotify_url=_spotify_url(track.get('external_urls')),
    )


def normalize_play(item):
    track = item.get('track')
    played_at = parse_datetime(item.get('played_at') or '')
    if not (isinstance(track, dict) and track.get('id') and played_at):
        logger.warning(f"Skipping invalid recently played entry: {item}")
        return None
    return RecentPlay(track=normalize_track(track), played_at=played_at)


# --- provider fetches ---

def fetch_top_artists(client, time_range='medium_term', limit=50):
    data = client.current_user_top_artists(limit=min(limit, 50), time_range=time_range)
    return [normalize_artist(a) for a in (data or {}).get('items', []) if a]


def fetch_top_tracks(client, time_range='medium_term', limit=50):
    data = client.current_user_top_tracks(limit=min(limit, 50), time_range=time_range)
    return [normalize_track(t) for t in (data or {}).get('items', []) if t]


def fetch_recently_played(client, limit=50):
    data = client.current_user_recently_played(limit=min(limit, 50))
    plays = (normalize_play(item) for item in (data or {}).get('items', []))
    return [p for p in plays if p is not None]


def fetch_audio_features(client, track_ids):
    """Audio features for ``track_ids``; empty when the app lacks access.

    The provider answers 403 for apps without extended quota, which is not an
    error for us: the stats fall back to neutral values.
    """
    ids = [tid for tid in track_ids if tid]
    features = []
    for start in range(0, len(ids), AUDIO_FEATURES_CHUNK):
        chunk = ids[start:start + AUDIO_FEATURES_CHUNK]
        try:
            results = client.audio_features(chunk) or []
        except SpotifyException as e:
            if e.http_status == 403:
                logger.warning("Audio features unavailable (403), continuing without them")
                return []
            raise
        features.extend(AudioFeatures.from_dict(f) for f in results if f)
    return features
