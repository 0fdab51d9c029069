"""Genre distribution of a list of artists."""

from typing import Dict, List

from ..types import ArtistSummary, GenreStat
from .utils import round_half_up


def aggregate_genres_from_artists(artists: List[ArtistSummary]) -> List[GenreStat]:
    """Rank every genre tag by how many artists carry it.

    Percentages are relative to the total number of tag occurrences, not to
    the number of artists. Artists without genres contribute nothing.
    """
    genre_counts: Dict[str, int] = {}
    for artist in artists:
        for genre in artist.genres:
            genre_counts[genre] = genre_counts.get(genre, 0) + 1

    total = sum(genre_counts.values())

    genres = [
        GenreStat(
            genre=genre,
            count=count,
            percentage=round_half_up(count / total * 100) if total > 0 else 0,
        )
        for genre, count in genre_counts.items()
    ]
    # sorted() is stable, so equal counts keep first-seen order
    return sorted(genres, key=lambda g: g.count, reverse=True)


def get_top_genres(genres: List[GenreStat], limit: int = 10) -> List[GenreStat]:
    return genres[:limit]
