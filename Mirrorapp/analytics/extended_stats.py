"""
Extended listening statistics for the dashboard and public profiles.

Every calculator returns a neutral value on empty input (50 for 0-100 scores,
120 BPM for tempo, noon for the peak hour) so a freshly signed-up user still
gets a renderable payload. Audio-feature based scores are only meaningful when
``ExtendedStats.has_audio_features`` is true; the provider may refuse access to
audio features altogether.
"""

import re
from typing import Dict, List, Optional

from ..types import (
    DAY_NAMES,
    ArtistSummary,
    AudioFeatures,
    ExtendedStats,
    ListeningPattern,
    TrackSummary,
)
from .utils import mean, round_half_up

_YEAR_PREFIX = re.compile(r'^(\d{4})')


def calculate_mainstream_score(tracks: List[TrackSummary]) -> int:
    if not tracks:
        return 50
    return round_half_up(mean(t.popularity for t in tracks))


def calculate_avg_song_length(tracks: List[TrackSummary]) -> int:
    if not tracks:
        return 0
    return round_half_up(mean(t.duration_ms for t in tracks))


def calculate_genre_diversity(artists: List[ArtistSummary]) -> int:
    return len({genre for artist in artists for genre in artist.genres})


def find_peak_listening_hour(patterns: List[ListeningPattern]) -> int:
    """Hour with the most plays summed over the week; the first hour wins ties."""
    hour_counts: Dict[int, int] = {}
    for p in patterns:
        hour_counts[p.hour] = hour_counts.get(p.hour, 0) + p.count

    peak_hour = 12
    max_count = 0
    for hour, count in hour_counts.items():
        if count > max_count:
            max_count = count
            peak_hour = hour
    return peak_hour


def find_most_active_day(patterns: List[ListeningPattern]) -> str:
    day_counts: Dict[int, int] = {}
    for p in patterns:
        day_counts[p.day_of_week] = day_counts.get(p.day_of_week, 0) + p.count

    peak_day = 0
    max_count = 0
    for day, count in day_counts.items():
        if count > max_count:
            max_count = count
            peak_day = day
    return DAY_NAMES[peak_day]


def _feature_score(audio_features: List[AudioFeatures], attr: str) -> int:
    if not audio_features:
        return 50
    return round_half_up(mean(getattr(f, attr) for f in audio_features) * 100)


def calculate_energy_score(audio_features: List[AudioFeatures]) -> int:
    return _feature_score(audio_features, 'energy')


def calculate_danceability_score(audio_features: List[AudioFeatures]) -> int:
    return _feature_score(audio_features, 'danceability')


def calculate_mood_score(audio_features: List[AudioFeatures]) -> int:
    # valence is the provider's "happiness" measure
    return _feature_score(audio_features, 'valence')


def calculate_acoustic_score(audio_features: List[AudioFeatures]) -> int:
    return _feature_score(audio_features, 'acousticness')


def calculate_avg_tempo(audio_features: List[AudioFeatures]) -> int:
    if not audio_features:
        return 120
    return round_half_up(mean(f.tempo for f in audio_features))


def calculate_loyalty_score(short_term_artists: List[ArtistSummary], long_term_artists: List[ArtistSummary]) -> int:
    """Share of current favourites that are also all-time favourites."""
    if not short_term_artists or not long_term_artists:
        return 50
    long_term_ids = {a.id for a in long_term_artists}
    overlap = sum(1 for a in short_term_artists if a.id in long_term_ids)
    return round_half_up(overlap / len(short_term_artists) * 100)


def calculate_discovery_rate(short_term_artists: List[ArtistSummary], long_term_artists: List[ArtistSummary]) -> int:
    """Share of current favourites that are new compared to the long-term list."""
    if not short_term_artists:
        return 0
    long_term_ids = {a.id for a in long_term_artists}
    new_artists = sum(1 for a in short_term_artists if a.id not in long_term_ids)
    return round_half_up(new_artists / len(short_term_artists) * 100)


def calculate_album_explorer_score(tracks: List[TrackSummary]) -> int:
    # 100 means every track comes from a different album
    if not tracks:
        return 0
    unique_albums = len({t.album_id for t in tracks})
    return round_half_up(unique_albums / len(tracks) * 100)


def calculate_decade_breakdown(tracks: List[TrackSummary]) -> List[Dict[str, object]]:
    """Percentage of dated tracks per decade, most recent decade first.

    Tracks without a 4-digit year prefix are left out of both sides of the
    ratio. Percentages are rounded one by one and may not add up to 100.
    """
    decade_counts: Dict[str, int] = {}
    valid_tracks = 0

    for track in tracks:
        match = _YEAR_PREFIX.match(track.release_date or '')
        if not match:
            continue
        year = int(match.group(1))
        decade = f"{year // 10 * 10}s"
        decade_counts[decade] = decade_counts.get(decade, 0) + 1
        valid_tracks += 1

    if valid_tracks == 0:
        return []

    breakdown = [
        {'decade': decade, 'percentage': round_half_up(count / valid_tracks * 100)}
        for decade, count in decade_counts.items()
    ]
    breakdown.sort(key=lambda d: d['decade'], reverse=True)
    return breakdown


def compute_extended_stats(
    short_term_tracks: Optional[List[TrackSummary]] = None,
    medium_term_tracks: Optional[List[TrackSummary]] = None,
    long_term_tracks: Optional[List[TrackSummary]] = None,
    short_term_artists: Optional[List[ArtistSummary]] = None,
    medium_term_artists: Optional[List[ArtistSummary]] = None,
    long_term_artists: Optional[List[ArtistSummary]] = None,
    audio_features: Optional[List[AudioFeatures]] = None,
    listening_patterns: Optional[List[ListeningPattern]] = None,
) -> ExtendedStats:
    short_term_tracks = short_term_tracks or []
    medium_term_tracks = medium_term_tracks or []
    short_term_artists = short_term_artists or []
    medium_term_artists = medium_term_artists or []
    long_term_artists = long_term_artists or []
    audio_features = audio_features or []
    listening_patterns = listening_patterns or []

    return ExtendedStats(
        mainstream_score=calculate_mainstream_score(medium_term_tracks),
        avg_song_length_ms=calculate_avg_song_length(medium_term_tracks),
        genre_diversity=calculate_genre_diversity(medium_term_artists),
        peak_listening_hour=find_peak_listening_hour(listening_patterns),
        most_active_day=find_most_active_day(listening_patterns),

        energy_score=calculate_energy_score(audio_features),
        danceability_score=calculate_danceability_score(audio_features),
        mood_score=calculate_mood_score(audio_features),
        acoustic_score=calculate_acoustic_score(audio_features),
        avg_tempo=calculate_avg_tempo(audio_features),
        has_audio_features=len(audio_features) > 0,

        loyalty_score=calculate_loyalty_score(short_term_artists, long_term_artists),
        discovery_rate=calculate_discovery_rate(short_term_artists, long_term_artists),
        album_explorer_score=calculate_album_explorer_score(medium_term_tracks),
        decade_breakdown=calculate_decade_breakdown(short_term_tracks + medium_term_tracks),
    )
