"""Value objects shared by the analytics pipeline, the sync job and the views.

Everything here is plain data. Snapshots are persisted as the ``as_dict()``
form of these objects (camelCase keys, matching the JSON the front-end reads),
and read back with ``from_dict()``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

TIME_RANGES = ('short_term', 'medium_term', 'long_term')

TIME_RANGE_LABELS = {
    'short_term': 'Last 4 Weeks',
    'medium_term': 'Last 6 Months',
    'long_term': 'All Time',
}

DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']


def _clamp_popularity(value) -> int:
    try:
        value = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, value))


@dataclass
class ArtistSummary:
    id: str
    name: str
    image_url: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    popularity: int = 0
    spotify_url: str = ''

    def __post_init__(self):
        self.popularity = _clamp_popularity(self.popularity)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArtistSummary':
        return cls(
            id=data.get('id') or '',
            name=data.get('name') or '',
            image_url=data.get('imageUrl'),
            genres=list(data.get('genres') or []),
            popularity=data.get('popularity', 0),
            spotify_url=data.get('spotifyUrl') or '',
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'imageUrl': self.image_url,
            'genres': list(self.genres),
            'popularity': self.popularity,
            'spotifyUrl': self.spotify_url,
        }


@dataclass
class TrackSummary:
    id: str
    name: str
    artist_names: List[str] = field(default_factory=list)
    album_id: str = ''
    album_name: str = ''
    album_image_url: Optional[str] = None
    album_spotify_url: str = ''
    duration_ms: int = 0
    popularity: int = 0
    release_date: Optional[str] = None
    spotify_url: str = ''

    def __post_init__(self):
        self.popularity = _clamp_popularity(self.popularity)
        self.duration_ms = max(0, int(self.duration_ms or 0))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackSummary':
        return cls(
            id=data.get('id') or '',
            name=data.get('name') or '',
            artist_names=list(data.get('artistNames') or []),
            album_id=data.get('albumId') or '',
            album_name=data.get('albumName') or '',
            album_image_url=data.get('albumImageUrl'),
            album_spotify_url=data.get('albumSpotifyUrl') or '',
            duration_ms=data.get('durationMs', 0),
            popularity=data.get('popularity', 0),
            release_date=data.get('releaseDate'),
            spotify_url=data.get('spotifyUrl') or '',
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'artistNames': list(self.artist_names),
            'albumId': self.album_id,
            'albumName': self.album_name,
            'albumImageUrl': self.album_image_url,
            'albumSpotifyUrl': self.album_spotify_url,
            'durationMs': self.duration_ms,
            'popularity': self.popularity,
            'releaseDate': self.release_date,
            'spotifyUrl': self.spotify_url,
        }


@dataclass
class AudioFeatures:
    """Per-track audio features. Only the first five fields feed the stats."""
    id: str
    danceability: float = 0.0
    energy: float = 0.0
    valence: float = 0.0
    acousticness: float = 0.0
    tempo: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    speechiness: float = 0.0
    loudness: float = 0.0
    mode: int = 0
    key: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AudioFeatures':
        return cls(
            id=data.get('id') or '',
            danceability=float(data.get('danceability') or 0.0),
            energy=float(data.get('energy') or 0.0),
            valence=float(data.get('valence') or 0.0),
            acousticness=float(data.get('acousticness') or 0.0),
            tempo=float(data.get('tempo') or 0.0),
            instrumentalness=float(data.get('instrumentalness') or 0.0),
            liveness=float(data.get('liveness') or 0.0),
            speechiness=float(data.get('speechiness') or 0.0),
            loudness=float(data.get('loudness') or 0.0),
            mode=int(data.get('mode') or 0),
            key=int(data.get('key') or 0),
        )


@dataclass
class PlayEvent:
    track_id: str
    duration_ms: int
    played_at: datetime


@dataclass
class RecentPlay:
    """A recently-played entry: the track plus when it was played."""
    track: TrackSummary
    played_at: datetime

    def as_event(self) -> PlayEvent:
        return PlayEvent(track_id=self.track.id, duration_ms=self.track.duration_ms, played_at=self.played_at)


@dataclass
class GenreStat:
    genre: str
    count: int
    percentage: int

    def as_dict(self) -> Dict[str, Any]:
        return {'genre': self.genre, 'count': self.count, 'percentage': self.percentage}


@dataclass
class ListeningPattern:
    hour: int
    day_of_week: int
    count: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {'hour': self.hour, 'dayOfWeek': self.day_of_week, 'count': self.count}


@dataclass
class ExtendedStats:
    # basic stats
    mainstream_score: int = 50
    avg_song_length_ms: int = 0
    genre_diversity: int = 0
    peak_listening_hour: int = 12
    most_active_day: str = 'Sunday'

    # audio feature stats, placeholders unless has_audio_features
    energy_score: int = 50
    danceability_score: int = 50
    mood_score: int = 50
    acoustic_score: int = 50
    avg_tempo: int = 120
    has_audio_features: bool = False

    # derived
    loyalty_score: int = 50
    discovery_rate: int = 0
    album_explorer_score: int = 0
    decade_breakdown: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'mainstreamScore': self.mainstream_score,
            'avgSongLengthMs': self.avg_song_length_ms,
            'genreDiversity': self.genre_diversity,
            'peakListeningHour': self.peak_listening_hour,
            'mostActiveDay': self.most_active_day,
            'energyScore': self.energy_score,
            'danceabilityScore': self.danceability_score,
            'moodScore': self.mood_score,
            'acousticScore': self.acoustic_score,
            'avgTempo': self.avg_tempo,
            'hasAudioFeatures': self.has_audio_features,
            'loyaltyScore': self.loyalty_score,
            'discoveryRate': self.discovery_rate,
            'albumExplorerScore': self.album_explorer_score,
            'decadeBreakdown': [dict(d) for d in self.decade_breakdown],
        }


@dataclass
class Badge:
    id: str
    name: str
    description: str
    icon: str
    earned_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'earnedAt': self.earned_at.isoformat() if self.earned_at else None,
        }


@dataclass
class BadgeContext:
    top_artists: List[ArtistSummary] = field(default_factory=list)
    genres: List[GenreStat] = field(default_factory=list)
    unique_artists_count: int = 0
    unique_tracks_count: int = 0
    total_listening_time_ms: int = 0


@dataclass
class BadgeDefinition:
    id: str
    name: str
    description: str
    icon: str
    check: Callable[[BadgeContext], bool]


@dataclass
class AlbumSummary:
    id: str
    name: str
    artist_names: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    spotify_url: str = ''
    track_count: int = 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'artistNames': list(self.artist_names),
            'imageUrl': self.image_url,
            'spotifyUrl': self.spotify_url,
            'trackCount': self.track_count,
        }


@dataclass
class ComparisonStat:
    label: str
    viewer_value: int
    profile_value: int

    def as_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'viewerValue': self.viewer_value, 'profileValue': self.profile_value}


@dataclass
class UserMusicData:
    """One side of a compatibility comparison."""
    top_artists: List[ArtistSummary] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    extended_stats: Optional[ExtendedStats] = None


@dataclass
class CompatibilityResult:
    score: int
    shared_artists: List[ArtistSummary] = field(default_factory=list)
    shared_genres: List[str] = field(default_factory=list)
    comparison_stats: List[ComparisonStat] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'sharedArtists': [a.as_dict() for a in self.shared_artists],
            'sharedGenres': list(self.shared_genres),
            'comparisonStats': [s.as_dict() for s in self.comparison_stats],
        }


PRIVACY_FIELDS = (
    'share_top_artists',
    'share_top_tracks',
    'share_genres',
    'share_audio_profile',
    'share_badges',
    'share_listening_stats',
    'share_patterns',
    'share_recently_played',
    'allow_comparison',
)


@dataclass
class PrivacyFlags:
    share_top_artists: bool = True
    share_top_tracks: bool = True
    share_genres: bool = True
    share_audio_profile: bool = True
    share_badges: bool = True
    share_listening_stats: bool = True
    share_patterns: bool = True
    share_recently_played: bool = True
    allow_comparison: bool = True

    @classmethod
    def from_profile(cls, profile) -> 'PrivacyFlags':
        return cls(**{name: bool(getattr(profile, name)) for name in PRIVACY_FIELDS})

    def as_dict(self) -> Dict[str, bool]:
        return {to_camel(name): getattr(self, name) for name in PRIVACY_FIELDS}


@dataclass
class ViewerRelationship:
    is_following: bool = False
    is_followed_by: bool = False
    has_pending_request: bool = False
    can_view: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return {
            'isFollowing': self.is_following,
            'isFollowedBy': self.is_followed_by,
            'hasPendingRequest': self.has_pending_request,
            'canView': self.can_view,
        }


def to_camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)
