from datetime import datetime, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from django.utils import timezone

from .models import Follow, FollowRequest, ListeningHistory, Profile, SpotifySnapshot, UserBadge, get_profile
from .profiles import build_public_profile, can_view_profile, find_user, get_viewer_relationship
from .snapshots import load_artists, replace_snapshot
from .types import ArtistSummary, TrackSummary

User = get_user_model()


def make_user(name, visibility=Profile.PUBLIC, handle=None):
    user = User.objects.create_user(username=f"spotify_{name}", email=f"{name}@example.com")
    profile = get_profile(user)
    profile.display_name = name.title()
    profile.username = handle
    profile.profile_visibility = visibility
    profile.save()
    return user


def seed_snapshots(user, artist_ids, genres=('pop',), popularity=60, track_count=12):
    artists = [ArtistSummary(id=a, name=a.upper(), genres=list(genres), popularity=popularity) for a in artist_ids]
    tracks = [
        TrackSummary(id=f"{user.pk}-t{i}", name=f"Track {i}", album_id=f"al{i % 3}", duration_ms=100000, popularity=50)
        for i in range(track_count)
    ]
    replace_snapshot(user, SpotifySnapshot.ARTISTS, 'medium_term', artists)
    replace_snapshot(user, SpotifySnapshot.TRACKS, 'medium_term', tracks)


class VisibilityGateTests(TestCase):
    def test_truth_table(self):
        for visibility in (Profile.PUBLIC, Profile.FOLLOWERS, Profile.PRIVATE):
            self.assertTrue(can_view_profile(visibility, True, False))
        self.assertTrue(can_view_profile(Profile.PUBLIC, False, False))
        self.assertTrue(can_view_profile(Profile.FOLLOWERS, False, True))
        self.assertFalse(can_view_profile(Profile.FOLLOWERS, False, False))
        self.assertFalse(can_view_profile(Profile.PRIVATE, False, True))


class ViewerRelationshipTests(TestCase):
    def setUp(self):
        self.owner = make_user('owner', Profile.FOLLOWERS)
        self.viewer = make_user('viewer')

    def test_anonymous_viewer(self):
        relationship = get_viewer_relationship(self.owner, AnonymousUser())
        self.assertFalse(relationship.can_view)
        self.assertFalse(relationship.is_following)

    def test_pending_request_and_follow_back(self):
        FollowRequest.objects.create(from_user=self.viewer, to_user=self.owner)
        Follow.objects.create(follower=self.owner, following=self.viewer)
        relationship = get_viewer_relationship(self.owner, self.viewer)
        self.assertTrue(relationship.has_pending_request)
        self.assertTrue(relationship.is_followed_by)
        self.assertFalse(relationship.can_view)

    def test_follower_can_view(self):
        Follow.objects.create(follower=self.viewer, following=self.owner)
        relationship = get_viewer_relationship(self.owner, self.viewer)
        self.assertTrue(relationship.is_following)
        self.assertTrue(relationship.can_view)

    def test_owner_sees_own_profile(self):
        profile = get_profile(self.owner)
        profile.profile_visibility = Profile.PRIVATE
        profile.save()
        self.assertTrue(get_viewer_relationship(self.owner, self.owner).can_view)


class PublicProfileTests(TestCase):
    def setUp(self):
        self.owner = make_user('owner', handle='owner_handle')
        self.viewer = make_user('viewer')
        seed_snapshots(self.owner, [f"a{i}" for i in range(15)], genres=('pop', 'rock', 'jazz', 'funk', 'soul', 'blues'))

    def test_restricted_profile_has_identity_only(self):
        profile = get_profile(self.owner)
        profile.profile_visibility = Profile.PRIVATE
        profile.save()

        data = build_public_profile(self.owner, AnonymousUser())
        self.assertEqual(data['user']['username'], 'owner_handle')
        self.assertEqual(data['stats'], {'topArtists': [], 'topTracks': [], 'topGenres': [], 'badges': []})
        self.assertFalse(data['viewerRelationship']['canView'])
        self.assertNotIn('compatibility', data)

    def test_facet_limits(self):
        stats = build_public_profile(self.owner, AnonymousUser())['stats']
        self.assertEqual(len(stats['topArtists']), 10)
        self.assertEqual(len(stats['topTracks']), 10)
        self.assertEqual(stats['topGenres'], ['pop', 'rock', 'jazz', 'funk', 'soul'])
        self.assertEqual(stats['listeningStats'], {
            'totalListeningTimeMs': 12 * 100000,
            'uniqueArtists': 15,
            'uniqueTracks': 12,
        })
        self.assertFalse(stats['extendedStats']['hasAudioFeatures'])
        self.assertEqual(len(stats['listeningPatterns']), 168)

    def test_privacy_flags_hide_facets(self):
        profile = get_profile(self.owner)
        profile.share_top_artists = False
        profile.share_listening_stats = False
        profile.share_audio_profile = False
        profile.share_patterns = False
        profile.save()

        stats = build_public_profile(self.owner, self.viewer)['stats']
        self.assertEqual(stats['topArtists'], [])
        self.assertEqual(len(stats['topTracks']), 10)
        self.assertNotIn('listeningStats', stats)
        self.assertNotIn('extendedStats', stats)
        self.assertNotIn('listeningPatterns', stats)

    def test_follower_counts(self):
        Follow.objects.create(follower=self.viewer, following=self.owner)
        data = build_public_profile(self.owner, self.viewer)
        self.assertEqual(data['user']['followerCount'], 1)
        self.assertEqual(data['user']['followingCount'], 0)

    def test_patterns_use_recent_history(self):
        played_at = datetime(2024, 1, 7, 15, 0, tzinfo=dt_timezone.utc)  # Sunday
        for i in range(3):
            ListeningHistory.objects.create(user=self.owner, track_id=f"t{i}", played_at=played_at + timedelta(minutes=i))
        patterns = build_public_profile(self.owner, AnonymousUser())['stats']['listeningPatterns']
        cell = next(p for p in patterns if p['dayOfWeek'] == 0 and p['hour'] == 15)
        self.assertEqual(cell['count'], 3)

    def test_badges_keep_persisted_earned_date(self):
        seed_snapshots(self.owner, ['star'], popularity=95)
        first_earned = datetime(2023, 3, 1, tzinfo=dt_timezone.utc)
        UserBadge.objects.create(user=self.owner, badge_id='mainstream', earned_at=first_earned)

        badges = build_public_profile(self.owner, AnonymousUser())['stats']['badges']
        mainstream = next(b for b in badges if b['id'] == 'mainstream')
        self.assertEqual(mainstream['earnedAt'], first_earned.isoformat())
        self.assertTrue(all(b['earnedAt'] for b in badges))

    def test_hidden_badges(self):
        profile = get_profile(self.owner)
        profile.share_badges = False
        profile.save()
        seed_snapshots(self.owner, ['star'], popularity=95)
        self.assertEqual(build_public_profile(self.owner, AnonymousUser())['stats']['badges'], [])


class ProfileCompatibilityTests(TestCase):
    def setUp(self):
        self.owner = make_user('owner')
        self.viewer = make_user('viewer')
        seed_snapshots(self.owner, ['a', 'b', 'c', 'd'], genres=('pop',))

    def test_included_for_signed_in_viewer_with_snapshot(self):
        seed_snapshots(self.viewer, ['a', 'e', 'f', 'g'], genres=('pop',))
        data = build_public_profile(self.owner, self.viewer)
        compatibility = data['compatibility']
        self.assertEqual([a['id'] for a in compatibility['sharedArtists']], ['a'])
        self.assertEqual(compatibility['sharedGenres'], ['pop'])
        self.assertTrue(0 <= compatibility['score'] <= 100)

    def test_not_included_without_viewer_snapshot(self):
        self.assertIsNone(load_artists(self.viewer))
        self.assertNotIn('compatibility', build_public_profile(self.owner, self.viewer))

    def test_not_included_when_comparison_disallowed(self):
        seed_snapshots(self.viewer, ['a'])
        profile = get_profile(self.owner)
        profile.allow_comparison = False
        profile.save()
        self.assertNotIn('compatibility', build_public_profile(self.owner, self.viewer))

    def test_not_included_for_owner_or_anonymous(self):
        self.assertNotIn('compatibility', build_public_profile(self.owner, self.owner))
        self.assertNotIn('compatibility', build_public_profile(self.owner, AnonymousUser()))


class FindUserTests(TestCase):
    def setUp(self):
        self.user = make_user('someone', handle='some_one')

    def test_by_handle_or_id(self):
        self.assertEqual(find_user('some_one'), self.user)
        self.assertEqual(find_user('SOME_ONE'), self.user)
        self.assertEqual(find_user(str(self.user.pk)), self.user)
        self.assertIsNone(find_user('nobody'))
        self.assertIsNone(find_user('999999'))


class PublicProfileViewTests(TestCase):
    def setUp(self):
        self.owner = make_user('owner', handle='visible')
        seed_snapshots(self.owner, ['a', 'b'])

    def test_get_profile_by_handle(self):
        response = self.client.get('/api/user/visible')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['user']['name'], 'Owner')
        self.assertEqual(len(data['stats']['topArtists']), 2)

    def test_unknown_user(self):
        self.assertEqual(self.client.get('/api/user/nobody').status_code, 404)

    def test_last_synced_at_is_serialised(self):
        profile = get_profile(self.owner)
        profile.last_synced_at = timezone.now()
        profile.save()
        data = self.client.get(f'/api/user/{self.owner.pk}').json()
        self.assertEqual(data['user']['lastSyncedAt'], profile.last_synced_at.isoformat())
