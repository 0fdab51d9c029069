"""
Music taste compatibility for Spotify Mirror.
Compares two users' top artists, genres and audio profile.

The score is symmetric in its inputs, but the shared-artist and shared-genre
lists follow the order of the first (viewer) argument.
"""

import logging
from typing import List, Optional

from .analytics.utils import round_half_up
from .types import (
    ArtistSummary,
    ComparisonStat,
    CompatibilityResult,
    ExtendedStats,
    UserMusicData,
)

logger = logging.getLogger(__name__)

WEIGHTS = {'artist': 0.40, 'genre': 0.35, 'profile': 0.25}
SHARED_LIST_LIMIT = 10
POSITION_BOOST_CAP = 30


class CompatibilityScorer:
    """Weighted artist / genre / audio-profile similarity (0-100)."""

    def __init__(self, weights=None):
        self.weights = weights or WEIGHTS

    def calculate_compatibility(self, viewer: UserMusicData, profile: UserMusicData) -> CompatibilityResult:
        shared_artists = self._find_shared_artists(viewer.top_artists, profile.top_artists)
        shared_genres = self._find_shared_genres(viewer.genres, profile.genres)
        comparison_stats = self._build_comparison_stats(viewer.extended_stats, profile.extended_stats)

        artist_score = self._calculate_artist_compatibility(shared_artists, viewer.top_artists, profile.top_artists)
        genre_score = self._calculate_genre_compatibility(shared_genres, viewer.genres, profile.genres)
        profile_score = self._calculate_profile_compatibility(viewer.extended_stats, profile.extended_stats)

        total_score = round_half_up(
            artist_score * self.weights['artist'] +
            genre_score * self.weights['genre'] +
            profile_score * self.weights['profile']
        )
        logger.debug(f"Compatibility artist={artist_score:.1f} genre={genre_score:.1f} "
                     f"profile={profile_score:.1f} total={total_score}")

        return CompatibilityResult(
            score=min(100, max(0, total_score)),
            shared_artists=shared_artists[:SHARED_LIST_LIMIT],
            shared_genres=shared_genres[:SHARED_LIST_LIMIT],
            comparison_stats=comparison_stats,
        )

    def _find_shared_artists(self, viewer_artists, profile_artists) -> List[ArtistSummary]:
        profile_ids = {a.id for a in profile_artists}
        return [a for a in viewer_artists if a.id in profile_ids]

    def _find_shared_genres(self, viewer_genres, profile_genres) -> List[str]:
        profile_genre_set = {g.lower() for g in profile_genres}
        shared = []
        seen = set()
        for genre in viewer_genres:
            key = genre.lower()
            if key in profile_genre_set and key not in seen:
                seen.add(key)
                shared.append(genre)
        return shared

    def _calculate_artist_compatibility(self, shared, viewer_artists, profile_artists) -> float:
        """Jaccard overlap of artist ids, doubled, plus a boost for shared favourites."""
        if not viewer_artists or not profile_artists:
            return 0.0

        union = {a.id for a in viewer_artists} | {a.id for a in profile_artists}
        jaccard = len(shared) / len(union) * 100.0

        position_boost = self._calculate_position_boost(shared, viewer_artists, profile_artists)
        # Jaccard is doubled before the boost, then capped at 100
        return min(100.0, jaccard * 2 + position_boost)

    def _calculate_position_boost(self, shared, viewer_artists, profile_artists) -> float:
        if not shared:
            return 0.0

        viewer_positions = {a.id: i for i, a in enumerate(viewer_artists)}
        profile_positions = {a.id: i for i, a in enumerate(profile_artists)}

        boost = 0
        for artist in shared:
            viewer_pos = viewer_positions.get(artist.id, len(viewer_artists))
            profile_pos = profile_positions.get(artist.id, len(profile_artists))

            if viewer_pos < 10 and profile_pos < 10:
                boost += 5
            elif viewer_pos < 20 and profile_pos < 20:
                boost += 2

        return min(POSITION_BOOST_CAP, boost)

    def _calculate_genre_compatibility(self, shared, viewer_genres, profile_genres) -> float:
        if not viewer_genres or not profile_genres:
            return 0.0

        union = {g.lower() for g in viewer_genres} | {g.lower() for g in profile_genres}
        return len(shared) / len(union) * 100.0

    def _calculate_profile_compatibility(self, viewer_stats: Optional[ExtendedStats],
                                         profile_stats: Optional[ExtendedStats]) -> float:
        """100 minus the mean absolute gap between audio scores; 50 without audio data."""
        if not (viewer_stats and viewer_stats.has_audio_features):
            return 50.0
        if not (profile_stats and profile_stats.has_audio_features):
            return 50.0

        pairs = [
            (viewer_stats.energy_score, profile_stats.energy_score),
            (viewer_stats.danceability_score, profile_stats.danceability_score),
            (viewer_stats.mood_score, profile_stats.mood_score),
            (viewer_stats.acoustic_score, profile_stats.acoustic_score),
            (viewer_stats.mainstream_score, profile_stats.mainstream_score),
        ]
        avg_diff = sum(abs(v - p) for v, p in pairs) / len(pairs)
        return 100.0 - avg_diff

    def _build_comparison_stats(self, viewer_stats: Optional[ExtendedStats],
                                profile_stats: Optional[ExtendedStats]) -> List[ComparisonStat]:
        if not viewer_stats or not profile_stats:
            return []

        stats = []
        if viewer_stats.has_audio_features and profile_stats.has_audio_features:
            stats.extend([
                ComparisonStat('Energy', viewer_stats.energy_score, profile_stats.energy_score),
                ComparisonStat('Danceability', viewer_stats.danceability_score, profile_stats.danceability_score),
                ComparisonStat('Mood', viewer_stats.mood_score, profile_stats.mood_score),
                ComparisonStat('Acoustic', viewer_stats.acoustic_score, profile_stats.acoustic_score),
            ])

        stats.append(ComparisonStat('Mainstream', viewer_stats.mainstream_score, profile_stats.mainstream_score))
        stats.append(ComparisonStat(
            'Genre Diversity',
            min(100, viewer_stats.genre_diversity * 2),
            min(100, profile_stats.genre_diversity * 2),
        ))
        return stats


# Utility functions for easy integration
def calculate_compatibility(viewer: UserMusicData, profile: UserMusicData) -> CompatibilityResult:
    return CompatibilityScorer().calculate_compatibility(viewer, profile)


def get_compatibility_description(score: int) -> str:
    if score >= 90:
        return "Musical soulmates!"
    if score >= 75:
        return "Amazing taste match"
    if score >= 60:
        return "Great compatibility"
    if score >= 45:
        return "Some common ground"
    if score >= 30:
        return "Different vibes"
    return "Opposite tastes"


def get_compatibility_color(score: int) -> str:
    if score >= 75:
        return "#1DB954"
    if score >= 50:
        return "#F59E0B"
    return "#EF4444"
