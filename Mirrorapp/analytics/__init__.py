from .albums import extract_top_albums_from_tracks
from .badges import assign_badges, get_all_badge_definitions
from .extended_stats import compute_extended_stats
from .genres import aggregate_genres_from_artists, get_top_genres
from .patterns import (
    bucket_plays_by_hour_and_weekday,
    calculate_total_listening_time,
    format_duration,
)

__all__ = [
    'aggregate_genres_from_artists',
    'assign_badges',
    'bucket_plays_by_hour_and_weekday',
    'calculate_total_listening_time',
    'compute_extended_stats',
    'extract_top_albums_from_tracks',
    'format_duration',
    'get_all_badge_definitions',
    'get_top_genres',
]
