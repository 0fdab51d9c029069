from typing import Dict, List

from ..types import AlbumSummary, TrackSummary


def extract_top_albums_from_tracks(tracks: List[TrackSummary]) -> List[AlbumSummary]:
    """Collapse top tracks into albums, ranked by how many top tracks each holds.

    Album metadata comes from the first track seen for that album; ties keep
    first-seen order.
    """
    albums: Dict[str, AlbumSummary] = {}

    for track in tracks:
        existing = albums.get(track.album_id)
        if existing:
            existing.track_count += 1
        else:
            albums[track.album_id] = AlbumSummary(
                id=track.album_id,
                name=track.album_name,
                artist_names=list(track.artist_names),
                image_url=track.album_image_url,
                spotify_url=track.album_spotify_url,
                track_count=1,
            )

    return sorted(albums.values(), key=lambda a: a.track_count, reverse=True)
