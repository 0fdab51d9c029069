from datetime import datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase, override_settings

from .analytics import (
    aggregate_genres_from_artists,
    assign_badges,
    bucket_plays_by_hour_and_weekday,
    calculate_total_listening_time,
    compute_extended_stats,
    extract_top_albums_from_tracks,
    format_duration,
    get_all_badge_definitions,
    get_top_genres,
)
from .analytics.extended_stats import (
    calculate_album_explorer_score,
    calculate_decade_breakdown,
    calculate_discovery_rate,
    calculate_loyalty_score,
    find_most_active_day,
    find_peak_listening_hour,
)
from .analytics.utils import round_half_up
from .types import (
    ArtistSummary,
    AudioFeatures,
    BadgeContext,
    GenreStat,
    ListeningPattern,
    PlayEvent,
    TrackSummary,
)


def artist(artist_id, genres=(), popularity=50):
    return ArtistSummary(id=artist_id, name=artist_id.title(), genres=list(genres), popularity=popularity)


def track(track_id, album_id='album', duration_ms=200000, popularity=50, release_date=None, artists=('Someone',)):
    return TrackSummary(
        id=track_id,
        name=track_id,
        artist_names=list(artists),
        album_id=album_id,
        album_name=f"Album {album_id}",
        duration_ms=duration_ms,
        popularity=popularity,
        release_date=release_date,
    )


class RoundingTests(SimpleTestCase):
    def test_halves_round_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(12.5), 13)
        self.assertEqual(round_half_up(66.666), 67)
        self.assertEqual(round_half_up(0.49), 0)


class GenreAggregationTests(SimpleTestCase):
    def test_counts_and_percentages(self):
        genres = aggregate_genres_from_artists([
            artist('a', ['pop', 'rock']),
            artist('b', ['pop']),
            artist('c', []),
        ])
        self.assertEqual([(g.genre, g.count, g.percentage) for g in genres], [('pop', 2, 67), ('rock', 1, 33)])

    def test_ties_keep_first_seen_order(self):
        genres = aggregate_genres_from_artists([artist('a', ['indie', 'folk']), artist('b', ['folk', 'indie'])])
        self.assertEqual([g.genre for g in genres], ['indie', 'folk'])

    def test_percentage_is_relative_to_tag_occurrences(self):
        # 8 tag occurrences, 'jazz' holds one of them: 12.5% rounds up
        artists = [artist('a', ['jazz', 'x1', 'x2', 'x3']), artist('b', ['x1', 'x2', 'x3', 'x4'])]
        jazz = next(g for g in aggregate_genres_from_artists(artists) if g.genre == 'jazz')
        self.assertEqual(jazz.percentage, 13)

    def test_empty_input(self):
        self.assertEqual(aggregate_genres_from_artists([]), [])
        self.assertEqual(aggregate_genres_from_artists([artist('a')]), [])

    def test_get_top_genres_limits(self):
        genres = [GenreStat(genre=f"g{i}", count=1, percentage=5) for i in range(20)]
        self.assertEqual(len(get_top_genres(genres)), 10)
        self.assertEqual(len(get_top_genres(genres, 3)), 3)

    def test_counts_sum_to_tag_occurrences(self):
        artists = [
            artist('a', ['pop', 'rock', 'indie']),
            artist('b', ['pop']),
            artist('c', ['jazz', 'rock']),
            artist('d', []),
        ]
        genres = aggregate_genres_from_artists(artists)
        self.assertEqual(sum(g.count for g in genres), sum(len(a.genres) for a in artists))


@override_settings(TIME_ZONE='UTC')
class PatternTests(SimpleTestCase):
    def test_always_168_cells_day_major(self):
        patterns = bucket_plays_by_hour_and_weekday([])
        self.assertEqual(len(patterns), 168)
        self.assertEqual((patterns[0].day_of_week, patterns[0].hour), (0, 0))
        self.assertEqual((patterns[25].day_of_week, patterns[25].hour), (1, 1))
        self.assertTrue(all(p.count == 0 for p in patterns))

    def test_sunday_is_day_zero(self):
        # 2024-01-07 was a Sunday, 2024-01-08 a Monday
        events = [
            PlayEvent('t1', 1000, datetime(2024, 1, 7, 15, 30, tzinfo=dt_timezone.utc)),
            PlayEvent('t2', 1000, datetime(2024, 1, 7, 15, 45, tzinfo=dt_timezone.utc)),
            PlayEvent('t3', 1000, datetime(2024, 1, 8, 9, 0, tzinfo=dt_timezone.utc)),
        ]
        patterns = bucket_plays_by_hour_and_weekday(events)
        self.assertEqual(patterns[0 * 24 + 15].count, 2)
        self.assertEqual(patterns[1 * 24 + 9].count, 1)
        self.assertEqual(sum(p.count for p in patterns), 3)

    def test_explicit_time_zone(self):
        played_at = datetime(2024, 1, 8, 3, 0, tzinfo=dt_timezone.utc)  # Sunday 22:00 in New York
        patterns = bucket_plays_by_hour_and_weekday(
            [PlayEvent('t1', 1000, played_at)], tz=ZoneInfo('America/New_York'),
        )
        self.assertEqual(patterns[0 * 24 + 22].count, 1)

    def test_total_listening_time_and_format(self):
        events = [PlayEvent('a', 1_800_000, datetime(2024, 1, 1)), PlayEvent('b', 1_860_000, datetime(2024, 1, 1))]
        self.assertEqual(calculate_total_listening_time(events), 3_660_000)
        self.assertEqual(format_duration(3_660_000), '1h 1m')
        self.assertEqual(format_duration(59_000), '0m')

    def test_counts_sum_to_number_of_events(self):
        start = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        events = [PlayEvent(f"t{i}", 1000, start + timedelta(hours=5 * i, minutes=7 * i)) for i in range(60)]
        patterns = bucket_plays_by_hour_and_weekday(events)
        self.assertEqual(sum(p.count for p in patterns), 60)
        self.assertGreater(len([p for p in patterns if p.count]), 1)

    def test_format_duration_boundaries(self):
        self.assertEqual(format_duration(0), '0m')
        self.assertEqual(format_duration(60_000), '1m')
        self.assertEqual(format_duration(3_600_000), '1h 0m')


class ExtendedStatsTests(SimpleTestCase):
    def test_empty_input_gives_neutral_values(self):
        stats = compute_extended_stats()
        self.assertEqual(stats.mainstream_score, 50)
        self.assertEqual(stats.avg_song_length_ms, 0)
        self.assertEqual(stats.genre_diversity, 0)
        self.assertEqual(stats.peak_listening_hour, 12)
        self.assertEqual(stats.most_active_day, 'Sunday')
        self.assertEqual(stats.energy_score, 50)
        self.assertEqual(stats.avg_tempo, 120)
        self.assertFalse(stats.has_audio_features)
        self.assertEqual(stats.loyalty_score, 50)
        self.assertEqual(stats.discovery_rate, 0)
        self.assertEqual(stats.album_explorer_score, 0)
        self.assertEqual(stats.decade_breakdown, [])

    def test_track_based_scores(self):
        tracks = [
            track('t1', 'x', duration_ms=180000, popularity=40),
            track('t2', 'x', duration_ms=200000, popularity=61),
            track('t3', 'y', duration_ms=220000, popularity=80),
            track('t4', 'z', duration_ms=240000, popularity=20),
        ]
        stats = compute_extended_stats(medium_term_tracks=tracks)
        self.assertEqual(stats.mainstream_score, 50)  # 50.25
        self.assertEqual(stats.avg_song_length_ms, 210000)
        self.assertEqual(stats.album_explorer_score, 75)
        self.assertEqual(calculate_album_explorer_score(tracks), 75)

    def test_audio_feature_scores(self):
        features = [
            AudioFeatures(id='a', energy=0.5, danceability=0.2, valence=0.9, acousticness=0.1, tempo=120.4),
            AudioFeatures(id='b', energy=0.8, danceability=0.4, valence=0.5, acousticness=0.3, tempo=121.6),
        ]
        stats = compute_extended_stats(audio_features=features)
        self.assertTrue(stats.has_audio_features)
        self.assertEqual(stats.energy_score, 65)
        self.assertEqual(stats.danceability_score, 30)
        self.assertEqual(stats.mood_score, 70)
        self.assertEqual(stats.acoustic_score, 20)
        self.assertEqual(stats.avg_tempo, 121)

    def test_loyalty_and_discovery(self):
        short = [artist('a'), artist('b'), artist('c'), artist('d')]
        long = [artist('a'), artist('b'), artist('q')]
        self.assertEqual(calculate_loyalty_score(short, long), 50)
        self.assertEqual(calculate_discovery_rate(short, long), 50)
        self.assertEqual(calculate_loyalty_score(short, []), 50)
        self.assertEqual(calculate_discovery_rate([], long), 0)
        self.assertEqual(calculate_discovery_rate(short, []), 100)

    def test_genre_diversity_counts_distinct_tags(self):
        stats = compute_extended_stats(medium_term_artists=[artist('a', ['pop', 'rock']), artist('b', ['pop', 'jazz'])])
        self.assertEqual(stats.genre_diversity, 3)

    def test_decade_breakdown_skips_undated_tracks(self):
        tracks = [
            track('t1', release_date='1999-01-01'),
            track('t2', release_date='2005'),
            track('t3', release_date='2008-05'),
            track('t4', release_date='unknown'),
            track('t5', release_date=None),
        ]
        self.assertEqual(calculate_decade_breakdown(tracks), [
            {'decade': '2000s', 'percentage': 67},
            {'decade': '1990s', 'percentage': 33},
        ])

    def test_decade_breakdown_combines_short_and_medium(self):
        stats = compute_extended_stats(
            short_term_tracks=[track('s', release_date='1985-02-02')],
            medium_term_tracks=[track('m', release_date='2021-02-02')],
        )
        self.assertEqual([d['decade'] for d in stats.decade_breakdown], ['2020s', '1980s'])

    def test_peak_hour_and_day(self):
        patterns = [ListeningPattern(hour=h, day_of_week=d) for d in range(7) for h in range(24)]
        patterns[3 * 24 + 21].count = 4   # Wednesday 21:00
        patterns[5 * 24 + 8].count = 3    # Friday 08:00
        patterns[5 * 24 + 9].count = 2    # Friday 09:00
        self.assertEqual(find_peak_listening_hour(patterns), 21)
        self.assertEqual(find_most_active_day(patterns), 'Friday')

    def test_peak_hour_tie_goes_to_earliest(self):
        patterns = [ListeningPattern(hour=7, day_of_week=0, count=2), ListeningPattern(hour=19, day_of_week=0, count=2)]
        self.assertEqual(find_peak_listening_hour(patterns), 7)

    def test_as_dict_uses_camel_case(self):
        data = compute_extended_stats().as_dict()
        self.assertIn('mainstreamScore', data)
        self.assertIn('decadeBreakdown', data)
        self.assertIs(data['hasAudioFeatures'], False)


class BadgeTests(SimpleTestCase):
    def earned_ids(self, **kwargs):
        return {b.id for b in assign_badges(BadgeContext(**kwargs))}

    def test_no_badges_for_empty_context(self):
        self.assertEqual(assign_badges(BadgeContext()), [])

    def test_count_thresholds(self):
        self.assertIn('explorer', self.earned_ids(unique_artists_count=50))
        self.assertNotIn('explorer', self.earned_ids(unique_artists_count=49))
        self.assertIn('collector', self.earned_ids(unique_tracks_count=100))
        self.assertIn('dedicated', self.earned_ids(total_listening_time_ms=10 * 60 * 60 * 1000))

    def test_popularity_badges(self):
        ids = self.earned_ids(top_artists=[artist('a', popularity=85), artist('b', popularity=30)])
        self.assertIn('mainstream', ids)
        self.assertIn('underground', ids)

    def test_genre_badges_only_look_at_top_three(self):
        genres = [
            GenreStat('dance pop', 5, 40),
            GenreStat('indie rock', 4, 30),
            GenreStat('jazz', 3, 20),
            GenreStat('hip hop', 1, 10),
        ]
        ids = self.earned_ids(genres=genres)
        self.assertIn('pop_lover', ids)
        self.assertIn('rock_fan', ids)
        self.assertNotIn('hip_hop_head', ids)

    def test_loyal_is_never_awarded(self):
        ids = self.earned_ids(
            top_artists=[artist('a', popularity=90)] * 10,
            unique_artists_count=500,
            unique_tracks_count=500,
            total_listening_time_ms=10 ** 10,
        )
        self.assertNotIn('loyal', ids)

    def test_badges_stamped_with_now(self):
        now = datetime(2024, 5, 1, tzinfo=dt_timezone.utc)
        badges = assign_badges(BadgeContext(unique_artists_count=60), now=now)
        self.assertEqual([b.earned_at for b in badges], [now])
        self.assertEqual(badges[0].as_dict()['earnedAt'], now.isoformat())

    def test_catalogue(self):
        definitions = get_all_badge_definitions()
        self.assertEqual(len(definitions), 10)
        self.assertEqual(len({d['id'] for d in definitions}), 10)

    def test_assignment_is_idempotent(self):
        context = BadgeContext(
            top_artists=[artist('a', popularity=90), artist('b', popularity=20)],
            genres=[GenreStat('indie rock', 3, 60), GenreStat('pop', 2, 40)],
            unique_artists_count=75,
            unique_tracks_count=20,
        )
        first = {b.id for b in assign_badges(context)}
        self.assertEqual({b.id for b in assign_badges(context)}, first)


class AlbumExtractionTests(SimpleTestCase):
    def test_ranks_albums_by_track_count(self):
        albums = extract_top_albums_from_tracks([
            track('t1', 'solo', artists=('First',)),
            track('t2', 'double', artists=('Second',)),
            track('t3', 'double', artists=('Other',)),
        ])
        self.assertEqual([(a.id, a.track_count) for a in albums], [('double', 2), ('solo', 1)])
        # metadata comes from the first track seen
        self.assertEqual(albums[0].artist_names, ['Second'])

    def test_ties_keep_first_seen_order(self):
        albums = extract_top_albums_from_tracks([track('t1', 'b'), track('t2', 'a')])
        self.assertEqual([a.id for a in albums], ['b', 'a'])

    def test_empty(self):
        self.assertEqual(extract_top_albums_from_tracks([]), [])
