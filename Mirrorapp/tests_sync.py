from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from spotipy import SpotifyException

from . import extras
from .analytics.badges import BADGE_DEFINITIONS
from .models import ListeningHistory, SpotifySnapshot, UserBadge, get_profile, spotifyToken
from .snapshots import load_artists, load_tracks
from .sync import get_users_needing_sync, record_badges, run_batch_sync, store_listening_history, sync_user_data
from .types import Badge

User = get_user_model()


def raw_artist(artist_id, popularity=70, genres=('pop',)):
    return {
        'id': artist_id,
        'name': artist_id.upper(),
        'genres': list(genres),
        'popularity': popularity,
        'images': [{'url': f'https://img/{artist_id}'}],
        'external_urls': {'spotify': f'https://open.spotify.com/artist/{artist_id}'},
    }


def raw_track(track_id, album_id='al1', duration_ms=200000):
    return {
        'id': track_id,
        'name': track_id.upper(),
        'artists': [{'name': 'Artist One'}, {'name': 'Artist Two'}],
        'album': {
            'id': album_id,
            'name': f'Album {album_id}',
            'images': [],
            'release_date': '2019-06-01',
            'external_urls': {'spotify': f'https://open.spotify.com/album/{album_id}'},
        },
        'duration_ms': duration_ms,
        'popularity': 55,
        'external_urls': {'spotify': f'https://open.spotify.com/track/{track_id}'},
    }


def raw_play(track_id, played_at):
    return {'track': raw_track(track_id), 'played_at': played_at}


def fake_client(prefix='a'):
    client = mock.Mock()
    client.current_user_top_artists.side_effect = lambda limit, time_range: {
        'items': [raw_artist(f"{prefix}-{time_range}-{i}") for i in range(3)],
    }
    client.current_user_top_tracks.side_effect = lambda limit, time_range: {
        'items': [raw_track(f"{prefix}-{time_range}-t{i}") for i in range(4)],
    }
    client.current_user_recently_played.return_value = {'items': [
        raw_play('r1', '2024-01-07T15:30:00.000Z'),
        raw_play('r2', '2024-01-07T16:30:00.000Z'),
        {'track': None, 'played_at': '2024-01-07T17:30:00.000Z'},
    ]}
    client.audio_features.side_effect = lambda ids: [
        {'id': i, 'energy': 0.5, 'danceability': 0.5, 'valence': 0.5, 'acousticness': 0.5, 'tempo': 120.0}
        for i in ids
    ]
    return client


def give_token(user, expires_in=None):
    return spotifyToken.objects.create(
        user=user,
        access_token='access',
        refresh_token='refresh',
        expires_in=expires_in or timezone.now() + timedelta(hours=1),
        token_type='Bearer',
    )


class NormalisationTests(SimpleTestCase):
    def test_normalize_artist(self):
        artist = extras.normalize_artist(raw_artist('x', popularity=140))
        self.assertEqual(artist.image_url, 'https://img/x')
        self.assertEqual(artist.spotify_url, 'https://open.spotify.com/artist/x')
        self.assertEqual(artist.popularity, 100)

    def test_normalize_track(self):
        track = extras.normalize_track(raw_track('t', album_id='alb'))
        self.assertEqual(track.artist_names, ['Artist One', 'Artist Two'])
        self.assertEqual(track.album_id, 'alb')
        self.assertIsNone(track.album_image_url)
        self.assertEqual(track.release_date, '2019-06-01')

    def test_normalize_play(self):
        play = extras.normalize_play(raw_play('t', '2024-01-07T15:30:00.000Z'))
        self.assertEqual(play.played_at, datetime(2024, 1, 7, 15, 30, tzinfo=dt_timezone.utc))
        self.assertEqual(play.as_event().track_id, 't')
        self.assertIsNone(extras.normalize_play({'track': None, 'played_at': '2024-01-07T15:30:00Z'}))
        self.assertIsNone(extras.normalize_play({'track': raw_track('t'), 'played_at': 'yesterday'}))

    def test_snapshot_round_trip_keeps_fields(self):
        track = extras.normalize_track(raw_track('t'))
        self.assertEqual(type(track).from_dict(track.as_dict()), track)


class AudioFeatureFetchTests(SimpleTestCase):
    def test_chunks_and_drops_nulls(self):
        client = mock.Mock()
        client.audio_features.side_effect = lambda ids: [{'id': i, 'energy': 0.4} for i in ids[:-1]] + [None]
        features = extras.fetch_audio_features(client, [f"t{i}" for i in range(150)] + [''])
        self.assertEqual(client.audio_features.call_count, 2)
        self.assertEqual(len(client.audio_features.call_args_list[0].args[0]), 100)
        self.assertEqual(len(features), 148)

    def test_forbidden_means_no_features(self):
        client = mock.Mock()
        client.audio_features.side_effect = SpotifyException(403, -1, 'forbidden')
        self.assertEqual(extras.fetch_audio_features(client, ['t1']), [])

    def test_other_errors_propagate(self):
        client = mock.Mock()
        client.audio_features.side_effect = SpotifyException(500, -1, 'boom')
        with self.assertRaises(SpotifyException):
            extras.fetch_audio_features(client, ['t1'])


class TokenTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='spotify_tok')

    def test_no_token(self):
        self.assertFalse(extras.is_spotify_authenticated(self.user))
        self.assertIsNone(extras.get_spotify_client(self.user))

    @mock.patch('Mirrorapp.extras.requests.post')
    def test_fresh_token_is_not_refreshed(self, post):
        give_token(self.user)
        self.assertEqual(extras.get_token(self.user), 'access')
        post.assert_not_called()

    @mock.patch('Mirrorapp.extras.requests.post')
    def test_expiring_token_is_refreshed(self, post):
        give_token(self.user, expires_in=timezone.now() + timedelta(minutes=2))
        post.return_value = mock.Mock(ok=True, json=lambda: {
            'access_token': 'new-access', 'token_type': 'Bearer', 'expires_in': 3600,
        })
        self.assertEqual(extras.get_token(self.user), 'new-access')
        tokens = spotifyToken.objects.get(user=self.user)
        # Spotify did not rotate the refresh token, keep the old one
        self.assertEqual(tokens.refresh_token, 'refresh')
        self.assertGreater(tokens.expires_in, timezone.now() + timedelta(minutes=50))

    @mock.patch('Mirrorapp.extras.requests.post', side_effect=requests.ConnectionError('down'))
    def test_refresh_failure(self, post):
        give_token(self.user, expires_in=timezone.now() - timedelta(minutes=1))
        self.assertIsNone(extras.get_token(self.user))


class SyncUserDataTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='spotify_sync')
        give_token(self.user)

    def sync_with(self, client):
        with mock.patch('Mirrorapp.extras.get_spotify_client', return_value=client):
            return sync_user_data(self.user)

    def test_sync_replaces_all_snapshots(self):
        self.assertTrue(self.sync_with(fake_client('first')))
        self.assertEqual(SpotifySnapshot.objects.filter(user=self.user).count(), 6)
        self.assertEqual([a.id for a in load_artists(self.user, 'short_term')][0], 'first-short_term-0')

        self.assertTrue(self.sync_with(fake_client('second')))
        self.assertEqual(SpotifySnapshot.objects.filter(user=self.user).count(), 6)
        ids = [t.id for t in load_tracks(self.user, 'long_term')]
        self.assertEqual(ids, [f"second-long_term-t{i}" for i in range(4)])

    def test_sync_records_history_badges_and_time(self):
        self.sync_with(fake_client())
        self.assertEqual(ListeningHistory.objects.filter(user=self.user).count(), 2)
        self.assertEqual(UserBadge.objects.filter(user=self.user).count(), len(BADGE_DEFINITIONS))
        self.assertIsNotNone(get_profile(self.user).last_synced_at)

        # same recently-played entries again: nothing new
        self.sync_with(fake_client())
        self.assertEqual(ListeningHistory.objects.filter(user=self.user).count(), 2)

    def test_provider_failure(self):
        client = fake_client()
        client.current_user_top_tracks.side_effect = SpotifyException(500, -1, 'down')
        self.assertFalse(self.sync_with(client))
        self.assertFalse(SpotifySnapshot.objects.exists())
        self.assertIsNone(get_profile(self.user).last_synced_at)

    def test_no_client(self):
        self.assertFalse(self.sync_with(None))

    def test_storage_failure_rolls_back(self):
        with mock.patch('Mirrorapp.sync.record_badges', side_effect=DatabaseError('disk full')):
            self.assertFalse(self.sync_with(fake_client()))
        self.assertFalse(SpotifySnapshot.objects.filter(user=self.user).exists())
        self.assertFalse(ListeningHistory.objects.filter(user=self.user).exists())
        self.assertIsNone(get_profile(self.user).last_synced_at)


class BadgePersistenceTests(TestCase):
    def test_first_earned_date_is_kept(self):
        user = User.objects.create_user(username='spotify_badges')
        first = datetime(2023, 1, 1, tzinfo=dt_timezone.utc)
        later = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
        badge = Badge(id='explorer', name='Music Explorer', description='', icon='compass', earned_at=first)

        record_badges(user, [badge])
        badge.earned_at = later
        record_badges(user, [badge])

        self.assertEqual(UserBadge.objects.get(user=user, badge_id='explorer').earned_at, first)
        self.assertIsNone(UserBadge.objects.get(user=user, badge_id='collector').earned_at)


class ListeningHistoryTests(TestCase):
    def test_insert_if_absent(self):
        user = User.objects.create_user(username='spotify_hist')
        plays = [extras.normalize_play(raw_play('t1', '2024-01-07T15:30:00Z'))]
        self.assertEqual(store_listening_history(user, plays), 1)
        self.assertEqual(store_listening_history(user, plays), 0)
        row = ListeningHistory.objects.get(user=user)
        self.assertEqual(row.artist_names, ['Artist One', 'Artist Two'])


class BatchSyncTests(TestCase):
    def setUp(self):
        now = timezone.now()
        self.stale = User.objects.create_user(username='spotify_stale')
        self.fresh = User.objects.create_user(username='spotify_fresh')
        self.never = User.objects.create_user(username='spotify_never')
        self.tokenless = User.objects.create_user(username='spotify_tokenless')
        for user in (self.stale, self.fresh, self.never):
            give_token(user)

        for user, synced_at in ((self.stale, now - timedelta(days=2)), (self.fresh, now - timedelta(hours=1))):
            profile = get_profile(user)
            profile.last_synced_at = synced_at
            profile.save()

    def test_users_needing_sync(self):
        self.assertEqual(get_users_needing_sync(24), [self.stale, self.never])
        self.assertEqual(get_users_needing_sync(24, batch_size=1), [self.stale])
        self.assertEqual(get_users_needing_sync(0.5), [self.stale, self.fresh, self.never])

    @mock.patch('Mirrorapp.sync.sync_user_data', side_effect=[True, False])
    def test_run_batch_sync(self, sync):
        self.assertEqual(run_batch_sync(24, delay=0), {'total': 2, 'successful': 1, 'failed': 1})
        self.assertEqual(sync.call_count, 2)

    def test_write_failure_does_not_stop_the_batch(self):
        with mock.patch('Mirrorapp.extras.get_spotify_client', side_effect=lambda user: fake_client()), \
                mock.patch('Mirrorapp.sync.save_snapshots', side_effect=[DatabaseError('boom'), None]):
            result = run_batch_sync(24, delay=0)
        self.assertEqual(result, {'total': 2, 'successful': 1, 'failed': 1})
        self.assertIsNotNone(get_profile(self.never).last_synced_at)

    @mock.patch('Mirrorapp.management.commands.sync_spotify.run_batch_sync',
                return_value={'total': 3, 'successful': 3, 'failed': 0})
    def test_management_command(self, run):
        out = StringIO()
        call_command('sync_spotify', '--hours', '12', '--delay', '0', stdout=out)
        run.assert_called_once_with(hours_old=12, delay=0.0)
        self.assertIn('Synced 3/3 users', out.getvalue())


class DashboardTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='spotify_dash', email='dash@example.com')
        self.client.force_login(self.user)

    def test_requires_spotify(self):
        with mock.patch('Mirrorapp.extras.get_spotify_client', return_value=None):
            self.assertEqual(self.client.get('/api/dashboard').status_code, 401)

    def test_dashboard_payload(self):
        with mock.patch('Mirrorapp.extras.get_spotify_client', return_value=fake_client()):
            response = self.client.get('/api/dashboard')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(set(data['topArtists']), {'shortTerm', 'mediumTerm', 'longTerm'})
        self.assertEqual(len(data['topTracks']['mediumTerm']), 4)
        self.assertEqual(data['topAlbums']['mediumTerm'][0]['trackCount'], 4)
        self.assertEqual(data['stats']['totalListeningTimeMs'], 400000)
        self.assertEqual(data['stats']['topGenre'], 'pop')
        self.assertTrue(data['extendedStats']['hasAudioFeatures'])
        self.assertEqual(data['extendedStats']['energyScore'], 50)
        self.assertEqual(len(data['listeningPatterns']), 168)
        self.assertIsNotNone(data['lastSyncedAt'])
        # the live fetch also refreshes the stored snapshots
        self.assertEqual(SpotifySnapshot.objects.filter(user=self.user).count(), 6)

    def test_audio_features_denied(self):
        client = fake_client()
        client.audio_features.side_effect = SpotifyException(403, -1, 'forbidden')
        with mock.patch('Mirrorapp.extras.get_spotify_client', return_value=client):
            data = self.client.get('/api/dashboard').json()
        self.assertFalse(data['extendedStats']['hasAudioFeatures'])

    def test_provider_failure(self):
        client = fake_client()
        client.current_user_recently_played.side_effect = requests.Timeout('slow')
        with mock.patch('Mirrorapp.extras.get_spotify_client', return_value=client):
            self.assertEqual(self.client.get('/api/dashboard').status_code, 502)
