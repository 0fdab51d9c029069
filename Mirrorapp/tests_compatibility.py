from django.test import SimpleTestCase

from .compatibility import (
    CompatibilityScorer,
    calculate_compatibility,
    get_compatibility_color,
    get_compatibility_description,
)
from .types import ArtistSummary, ExtendedStats, UserMusicData


def artists(*ids):
    return [ArtistSummary(id=i, name=i.upper()) for i in ids]


def audio_stats(energy=50, danceability=50, mood=50, acoustic=50, mainstream=50, diversity=10):
    return ExtendedStats(
        mainstream_score=mainstream,
        genre_diversity=diversity,
        energy_score=energy,
        danceability_score=danceability,
        mood_score=mood,
        acoustic_score=acoustic,
        has_audio_features=True,
    )


class CompatibilityScoreTests(SimpleTestCase):
    def test_identical_taste_without_audio(self):
        ids = [f"a{i}" for i in range(10)]
        user = UserMusicData(top_artists=artists(*ids), genres=['pop', 'rock'], extended_stats=ExtendedStats())
        result = calculate_compatibility(user, user)
        # artist 100 * 0.40 + genre 100 * 0.35 + neutral profile 50 * 0.25 = 87.5
        self.assertEqual(result.score, 88)
        self.assertEqual(result.shared_genres, ['pop', 'rock'])

    def test_nothing_in_common_still_gets_neutral_profile_share(self):
        viewer = UserMusicData(top_artists=artists('a', 'b'), genres=['pop'])
        profile = UserMusicData(top_artists=artists('c', 'd'), genres=['metal'])
        # 50 * 0.25 = 12.5, rounded half up
        self.assertEqual(calculate_compatibility(viewer, profile).score, 13)

    def test_empty_sides(self):
        result = calculate_compatibility(UserMusicData(), UserMusicData())
        self.assertEqual(result.score, 13)
        self.assertEqual(result.shared_artists, [])
        self.assertEqual(result.comparison_stats, [])

    def test_position_boost_for_shared_favourites(self):
        viewer = UserMusicData(top_artists=artists('a', 'b', 'c', 'd'))
        profile = UserMusicData(top_artists=artists('a', 'e', 'f', 'g'))
        # jaccard 1/7 doubled = 28.57, +5 boost = 33.57; * 0.40 + 12.5 = 25.93
        self.assertEqual(calculate_compatibility(viewer, profile).score, 26)

    def test_position_boost_is_capped(self):
        scorer = CompatibilityScorer()
        shared = artists(*[f"a{i}" for i in range(10)])
        self.assertEqual(scorer._calculate_position_boost(shared, shared, shared), 30)

    def test_boost_for_positions_between_ten_and_twenty(self):
        scorer = CompatibilityScorer()
        viewer = artists(*[f"v{i}" for i in range(15)]) + artists('shared')
        profile = artists(*[f"p{i}" for i in range(12)]) + artists('shared')
        self.assertEqual(scorer._calculate_position_boost(artists('shared'), viewer, profile), 2)

    def test_score_is_symmetric(self):
        viewer = UserMusicData(top_artists=artists('a', 'b', 'c'), genres=['pop', 'indie'],
                               extended_stats=audio_stats(energy=80))
        profile = UserMusicData(top_artists=artists('c', 'd'), genres=['indie', 'folk', 'jazz'],
                                extended_stats=audio_stats(energy=20))
        self.assertEqual(calculate_compatibility(viewer, profile).score,
                         calculate_compatibility(profile, viewer).score)

    def test_swapping_sides_keeps_score_but_not_shared_order(self):
        viewer = UserMusicData(top_artists=artists('a', 'b', 'c', 'd'), genres=['pop', 'rock'])
        profile = UserMusicData(top_artists=artists('d', 'c', 'b', 'x'), genres=['rock', 'pop'])
        forward = calculate_compatibility(viewer, profile)
        backward = calculate_compatibility(profile, viewer)
        self.assertEqual(forward.score, backward.score)
        self.assertEqual([a.id for a in forward.shared_artists], ['b', 'c', 'd'])
        self.assertEqual([a.id for a in backward.shared_artists], ['d', 'c', 'b'])
        self.assertEqual(forward.shared_genres, ['pop', 'rock'])
        self.assertEqual(backward.shared_genres, ['rock', 'pop'])

    def test_scores_stay_bounded(self):
        many = [f"a{i}" for i in range(40)]
        cases = [
            (UserMusicData(), UserMusicData(top_artists=artists(*many), genres=['pop'])),
            (UserMusicData(top_artists=artists(*many[:20]), genres=['pop', 'rock'],
                           extended_stats=audio_stats(energy=0, danceability=0, mood=0, acoustic=0, mainstream=0)),
             UserMusicData(top_artists=artists(*many[10:]), genres=['rock', 'jazz'],
                           extended_stats=audio_stats(energy=100, danceability=100, mood=100, acoustic=100,
                                                      mainstream=100, diversity=100))),
            (UserMusicData(top_artists=artists(*many), genres=['x'] * 5, extended_stats=audio_stats()),
             UserMusicData(top_artists=artists(*reversed(many)), genres=['X'], extended_stats=audio_stats())),
            (UserMusicData(top_artists=artists('solo'), extended_stats=ExtendedStats()),
             UserMusicData(top_artists=artists('solo'), extended_stats=audio_stats(energy=100))),
        ]
        for viewer, profile in cases:
            for a, b in ((viewer, profile), (profile, viewer)):
                score = calculate_compatibility(a, b).score
                self.assertGreaterEqual(score, 0)
                self.assertLessEqual(score, 100)

    def test_repeated_genres_count_once(self):
        viewer = UserMusicData(genres=['pop', 'Pop', 'pop'])
        profile = UserMusicData(genres=['POP'])
        result = calculate_compatibility(viewer, profile)
        self.assertEqual(result.shared_genres, ['pop'])
        # genre 100 * 0.35 + neutral profile 50 * 0.25 = 47.5
        self.assertEqual(result.score, 48)

    def test_audio_profile_similarity(self):
        stats = audio_stats(energy=70, danceability=60, mood=40, acoustic=10, mainstream=55)
        viewer = UserMusicData(extended_stats=stats)
        profile = UserMusicData(extended_stats=stats)
        # identical audio profile: 100 * 0.25
        self.assertEqual(calculate_compatibility(viewer, profile).score, 25)

    def test_shared_lists_follow_viewer_order_and_are_truncated(self):
        ids = [f"a{i}" for i in range(15)]
        genres = [f"g{i}" for i in range(15)]
        viewer = UserMusicData(top_artists=artists(*ids), genres=genres)
        profile = UserMusicData(top_artists=artists(*reversed(ids)), genres=[g.upper() for g in reversed(genres)])
        result = calculate_compatibility(viewer, profile)
        self.assertEqual([a.id for a in result.shared_artists], ids[:10])
        # genres are matched case-insensitively but reported as the viewer spells them
        self.assertEqual(result.shared_genres, genres[:10])

    def test_score_stays_in_range(self):
        ids = [f"a{i}" for i in range(50)]
        stats = audio_stats()
        user = UserMusicData(top_artists=artists(*ids), genres=['x'], extended_stats=stats)
        self.assertEqual(calculate_compatibility(user, user).score, 100)


class ComparisonStatsTests(SimpleTestCase):
    def test_without_audio_features(self):
        result = calculate_compatibility(
            UserMusicData(extended_stats=ExtendedStats(mainstream_score=70, genre_diversity=12)),
            UserMusicData(extended_stats=ExtendedStats(mainstream_score=30, genre_diversity=80)),
        )
        self.assertEqual([s.as_dict() for s in result.comparison_stats], [
            {'label': 'Mainstream', 'viewerValue': 70, 'profileValue': 30},
            {'label': 'Genre Diversity', 'viewerValue': 24, 'profileValue': 100},
        ])

    def test_with_audio_features_on_both_sides(self):
        result = calculate_compatibility(
            UserMusicData(extended_stats=audio_stats(energy=90)),
            UserMusicData(extended_stats=audio_stats(energy=10)),
        )
        labels = [s.label for s in result.comparison_stats]
        self.assertEqual(labels, ['Energy', 'Danceability', 'Mood', 'Acoustic', 'Mainstream', 'Genre Diversity'])
        self.assertEqual((result.comparison_stats[0].viewer_value, result.comparison_stats[0].profile_value), (90, 10))

    def test_missing_stats_on_one_side(self):
        result = calculate_compatibility(UserMusicData(extended_stats=audio_stats()), UserMusicData())
        self.assertEqual(result.comparison_stats, [])


class CompatibilityLabelTests(SimpleTestCase):
    def test_descriptions(self):
        self.assertEqual(get_compatibility_description(95), "Musical soulmates!")
        self.assertEqual(get_compatibility_description(75), "Amazing taste match")
        self.assertEqual(get_compatibility_description(60), "Great compatibility")
        self.assertEqual(get_compatibility_description(45), "Some common ground")
        self.assertEqual(get_compatibility_description(30), "Different vibes")
        self.assertEqual(get_compatibility_description(0), "Opposite tastes")

    def test_colors(self):
        self.assertEqual(get_compatibility_color(80), "#1DB954")
        self.assertEqual(get_compatibility_color(50), "#F59E0B")
        self.assertEqual(get_compatibility_color(49), "#EF4444")
