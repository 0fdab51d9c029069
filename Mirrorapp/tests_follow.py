import json
from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from .models import Follow, FollowRequest, Profile, get_profile
from .rate_limit import RateLimiter, get_client_ip

User = get_user_model()


def make_user(name, visibility=Profile.PUBLIC, handle=None, synced=False):
    user = User.objects.create_user(username=f"spotify_{name}", email=f"{name}@example.com")
    profile = get_profile(user)
    profile.display_name = name.title()
    profile.username = handle
    profile.profile_visibility = visibility
    if synced:
        profile.last_synced_at = timezone.now() - timedelta(days=1)
    profile.save()
    return user


class JsonClientMixin:
    def send(self, method, url, payload=None, **extra):
        return getattr(self.client, method)(
            url, data=json.dumps(payload or {}), content_type='application/json', **extra,
        )


class FollowTests(JsonClientMixin, TestCase):
    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.client.force_login(self.alice)

    def test_follow_requires_login(self):
        self.client.logout()
        response = self.send('post', '/api/follow', {'userId': str(self.bob.pk)})
        self.assertEqual(response.status_code, 401)

    def test_follow_public_profile(self):
        response = self.send('post', '/api/follow', {'userId': str(self.bob.pk)})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'following')
        self.assertTrue(Follow.objects.filter(follower=self.alice, following=self.bob).exists())

    def test_cannot_follow_self(self):
        response = self.send('post', '/api/follow', {'userId': str(self.alice.pk)})
        self.assertEqual(response.status_code, 400)

    def test_missing_user_id(self):
        self.assertEqual(self.send('post', '/api/follow', {}).status_code, 400)

    def test_unknown_user(self):
        self.assertEqual(self.send('post', '/api/follow', {'userId': '999999'}).status_code, 404)

    def test_already_following(self):
        Follow.objects.create(follower=self.alice, following=self.bob)
        self.assertEqual(self.send('post', '/api/follow', {'userId': str(self.bob.pk)}).status_code, 409)

    def test_private_profile_cannot_be_followed(self):
        carol = make_user('carol', Profile.PRIVATE)
        response = self.send('post', '/api/follow', {'userId': str(carol.pk)})
        self.assertEqual(response.status_code, 403)
        self.assertFalse(Follow.objects.filter(following=carol).exists())
        self.assertFalse(FollowRequest.objects.filter(to_user=carol).exists())

    def test_followers_only_profile_gets_a_request(self):
        dave = make_user('dave', Profile.FOLLOWERS)
        response = self.send('post', '/api/follow', {'userId': str(dave.pk)})
        self.assertEqual(response.json()['status'], 'pending')
        self.assertFalse(Follow.objects.filter(following=dave).exists())

        again = self.send('post', '/api/follow', {'userId': str(dave.pk)})
        self.assertEqual(again.json(), {'message': 'Follow request already pending', 'status': 'pending'})
        self.assertEqual(FollowRequest.objects.filter(from_user=self.alice, to_user=dave).count(), 1)

    def test_rejected_request_is_reopened(self):
        dave = make_user('dave', Profile.FOLLOWERS)
        FollowRequest.objects.create(from_user=self.alice, to_user=dave, status=FollowRequest.REJECTED)
        response = self.send('post', '/api/follow', {'userId': str(dave.pk)})
        self.assertEqual(response.json()['status'], 'pending')
        self.assertEqual(FollowRequest.objects.get(from_user=self.alice, to_user=dave).status, FollowRequest.PENDING)

    def test_unfollow_removes_follow_and_request(self):
        Follow.objects.create(follower=self.alice, following=self.bob)
        FollowRequest.objects.create(from_user=self.alice, to_user=self.bob)
        response = self.send('delete', '/api/follow', {'userId': str(self.bob.pk)})
        self.assertEqual(response.json()['message'], 'Unfollowed user')
        self.assertFalse(Follow.objects.exists())
        self.assertFalse(FollowRequest.objects.exists())

    def test_unfollow_without_follow(self):
        response = self.send('delete', '/api/follow', {'userId': str(self.bob.pk)})
        self.assertEqual(response.json()['message'], 'Follow/request removed')

    def test_follow_lists(self):
        Follow.objects.create(follower=self.alice, following=self.bob)
        followers = self.client.get('/api/follow', {'type': 'followers', 'userId': self.bob.pk}).json()
        self.assertEqual(followers['count'], 1)
        self.assertEqual(followers['users'][0]['id'], str(self.alice.pk))
        self.assertIn('followedAt', followers['users'][0])

        following = self.client.get('/api/follow', {'type': 'following'}).json()
        self.assertEqual([u['name'] for u in following['users']], ['Bob'])

        self.assertEqual(self.client.get('/api/follow', {'type': 'bogus'}).status_code, 400)

    def test_follow_list_rejects_non_numeric_user_id(self):
        response = self.client.get('/api/follow', {'type': 'followers', 'userId': 'alice'})
        self.assertEqual(response.status_code, 400)
        response = self.client.get('/api/follow', {'type': 'following', 'userId': '12abc'})
        self.assertEqual(response.status_code, 400)

    def test_follow_survives_a_concurrent_duplicate(self):
        # the duplicate lands between the "already following" check and the insert
        Follow.objects.create(follower=self.alice, following=self.bob)
        with mock.patch('Mirrorapp.views.Follow.objects.filter') as follow_filter:
            follow_filter.return_value.exists.return_value = False
            response = self.send('post', '/api/follow', {'userId': str(self.bob.pk)})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'following')
        self.assertEqual(Follow.objects.filter(follower=self.alice, following=self.bob).count(), 1)


class FollowRequestTests(JsonClientMixin, TestCase):
    def setUp(self):
        self.owner = make_user('owner', Profile.FOLLOWERS)
        self.fan = make_user('fan')
        self.follow_request = FollowRequest.objects.create(from_user=self.fan, to_user=self.owner)
        self.client.force_login(self.owner)

    def respond(self, action, request_id=None):
        return self.send('post', '/api/follow/requests', {
            'requestId': str(request_id or self.follow_request.pk), 'action': action,
        })

    def test_list_pending_requests(self):
        data = self.client.get('/api/follow/requests').json()
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['requests'][0]['fromUser']['id'], str(self.fan.pk))

    def test_accept_creates_follow(self):
        response = self.respond('accept')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(Follow.objects.filter(follower=self.fan, following=self.owner).exists())
        self.follow_request.refresh_from_db()
        self.assertEqual(self.follow_request.status, FollowRequest.ACCEPTED)

    def test_reject(self):
        self.respond('reject')
        self.follow_request.refresh_from_db()
        self.assertEqual(self.follow_request.status, FollowRequest.REJECTED)
        self.assertFalse(Follow.objects.exists())

    def test_only_pending_requests_can_be_processed(self):
        self.respond('reject')
        self.assertEqual(self.respond('accept').status_code, 400)

    def test_only_addressee_can_respond(self):
        self.client.force_login(self.fan)
        self.assertEqual(self.respond('accept').status_code, 403)

    def test_invalid_payloads(self):
        self.assertEqual(self.respond('maybe').status_code, 400)
        self.assertEqual(self.send('post', '/api/follow/requests', {'action': 'accept'}).status_code, 400)
        self.assertEqual(self.respond('accept', request_id=999999).status_code, 404)

    def test_accept_is_all_or_nothing(self):
        with mock.patch.object(FollowRequest, 'save', side_effect=DatabaseError('boom')):
            with self.assertRaises(DatabaseError):
                self.respond('accept')
        self.assertFalse(Follow.objects.exists())
        self.follow_request.refresh_from_db()
        self.assertEqual(self.follow_request.status, FollowRequest.PENDING)

    def test_remove_follower(self):
        Follow.objects.create(follower=self.fan, following=self.owner)
        response = self.send('delete', '/api/follow/requests', {'userId': str(self.fan.pk)})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Follow.objects.exists())
        again = self.send('delete', '/api/follow/requests', {'userId': str(self.fan.pk)})
        self.assertEqual(again.status_code, 404)


class SettingsTests(JsonClientMixin, TestCase):
    def setUp(self):
        self.user = make_user('me')
        self.client.force_login(self.user)

    def patch(self, payload):
        return self.send('patch', '/api/user/settings', payload)

    def test_requires_login(self):
        self.client.logout()
        self.assertEqual(self.client.get('/api/user/settings').status_code, 401)

    def test_defaults(self):
        data = self.client.get('/api/user/settings').json()
        self.assertEqual(data['profileVisibility'], 'PUBLIC')
        self.assertFalse(data['hasCompletedOnboarding'])
        self.assertTrue(all(data['privacy'].values()))
        self.assertEqual(len(data['privacy']), 9)

    def test_username_is_lowercased(self):
        response = self.patch({'username': 'Cool_User'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['username'], 'cool_user')
        self.assertEqual(get_profile(self.user).username, 'cool_user')

    def test_username_validation(self):
        self.assertEqual(self.patch({'username': 'ab'}).status_code, 400)
        self.assertEqual(self.patch({'username': 'bad-name!'}).status_code, 400)
        self.assertEqual(self.patch({'username': 'x' * 21}).status_code, 400)

    def test_reserved_username(self):
        response = self.patch({'username': 'Admin'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('reserved', response.json()['error'])

    def test_taken_username(self):
        make_user('other', handle='taken_name')
        self.assertEqual(self.patch({'username': 'Taken_Name'}).status_code, 409)

    def test_keeping_own_username_is_not_a_conflict(self):
        self.patch({'username': 'mine'})
        self.assertEqual(self.patch({'username': 'mine'}).status_code, 200)

    def test_username_can_be_cleared(self):
        self.patch({'username': 'mine'})
        self.assertIsNone(self.patch({'username': None}).json()['username'])

    def test_bio_length(self):
        self.assertEqual(self.patch({'bio': 'x' * 161}).status_code, 400)
        self.assertEqual(self.patch({'bio': 'x' * 160}).json()['bio'], 'x' * 160)

    def test_visibility(self):
        self.assertEqual(self.patch({'profileVisibility': 'SECRET'}).status_code, 400)
        self.assertEqual(self.patch({'profileVisibility': None}).status_code, 400)
        self.assertEqual(self.patch({'profileVisibility': 'FOLLOWERS'}).json()['profileVisibility'], 'FOLLOWERS')

    def test_privacy_flags_only_accept_booleans(self):
        data = self.patch({'privacy': {'shareTopArtists': False, 'shareGenres': 'no', 'allowComparison': 0}}).json()
        self.assertFalse(data['privacy']['shareTopArtists'])
        self.assertTrue(data['privacy']['shareGenres'])
        self.assertTrue(data['privacy']['allowComparison'])

    def test_onboarding_and_untouched_fields(self):
        self.patch({'bio': 'hello'})
        data = self.patch({'hasCompletedOnboarding': True}).json()
        self.assertTrue(data['hasCompletedOnboarding'])
        self.assertEqual(data['bio'], 'hello')

    def test_invalid_json(self):
        response = self.client.patch('/api/user/settings', data='not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)


class DiscoverTests(TestCase):
    def setUp(self):
        cache.clear()
        self.me = make_user('me')
        self.jazz = make_user('jazzfan', handle='jazz_cat', synced=True)
        self.jazz_private = make_user('jazzsecret', Profile.PRIVATE, synced=True)
        self.jazz_followers = make_user('jazzfriends', Profile.FOLLOWERS)
        self.client.force_login(self.me)

    def test_short_query_returns_nothing(self):
        self.assertEqual(self.client.get('/api/users/search', {'q': 'j'}).json(), {'users': [], 'total': 0})

    def test_search_public_and_followers_profiles(self):
        Follow.objects.create(follower=self.me, following=self.jazz)
        data = self.client.get('/api/users/search', {'q': 'JAZZ'}).json()
        self.assertEqual(data['total'], 2)
        by_id = {u['id']: u for u in data['users']}
        self.assertEqual(set(by_id), {str(self.jazz.pk), str(self.jazz_followers.pk)})
        # most followed first
        self.assertEqual(data['users'][0]['id'], str(self.jazz.pk))
        self.assertTrue(by_id[str(self.jazz.pk)]['isFollowing'])
        self.assertFalse(by_id[str(self.jazz_followers.pk)]['isFollowing'])

    def test_search_matches_handle_and_excludes_self(self):
        data = self.client.get('/api/users/search', {'q': 'cat'}).json()
        self.assertEqual([u['username'] for u in data['users']], ['jazz_cat'])
        self.assertEqual(self.client.get('/api/users/search', {'q': 'me'}).json()['total'], 0)

    def test_search_limit_is_capped(self):
        for i in range(3):
            make_user(f"jazz{i}")
        data = self.client.get('/api/users/search', {'q': 'jazz', 'limit': '2'}).json()
        self.assertEqual(len(data['users']), 2)
        self.assertEqual(data['total'], 5)

    @override_settings(MIRROR_SEARCH_RATE_LIMIT={'window_seconds': 60, 'max_requests': 2})
    def test_search_rate_limit(self):
        first = self.client.get('/api/users/search', {'q': 'jazz'}, HTTP_X_FORWARDED_FOR='10.0.0.1')
        self.assertEqual(first['X-RateLimit-Remaining'], '1')
        self.client.get('/api/users/search', {'q': 'jazz'}, HTTP_X_FORWARDED_FOR='10.0.0.1')
        blocked = self.client.get('/api/users/search', {'q': 'jazz'}, HTTP_X_FORWARDED_FOR='10.0.0.1')
        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(blocked['X-RateLimit-Remaining'], '0')
        self.assertIn('Retry-After', blocked)
        # other clients have their own window
        other = self.client.get('/api/users/search', {'q': 'jazz'}, HTTP_X_FORWARDED_FOR='10.0.0.2')
        self.assertEqual(other.status_code, 200)

    def test_recent_users_are_public_and_synced(self):
        data = self.client.get('/api/users/recent').json()
        self.assertEqual([u['id'] for u in data['users']], [str(self.jazz.pk)])


class SyncEndpointTests(TestCase):
    def setUp(self):
        self.user = make_user('me')
        self.client.force_login(self.user)

    def test_cooldown(self):
        profile = get_profile(self.user)
        profile.last_synced_at = timezone.now() - timedelta(seconds=60)
        profile.save()
        response = self.client.post('/api/user/sync')
        self.assertEqual(response.status_code, 429)
        self.assertIn('240 seconds', response.json()['error'])

    @mock.patch('Mirrorapp.views.sync_user_data', return_value=True)
    def test_manual_sync(self, sync_user_data):
        response = self.client.post('/api/user/sync')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])
        sync_user_data.assert_called_once_with(self.user)

    @mock.patch('Mirrorapp.views.sync_user_data', return_value=False)
    def test_manual_sync_failure(self, sync_user_data):
        self.assertEqual(self.client.post('/api/user/sync').status_code, 500)

    @mock.patch('Mirrorapp.views.CRON_SECRET', 'shh')
    @mock.patch('Mirrorapp.views.run_batch_sync', return_value={'total': 2, 'successful': 1, 'failed': 1})
    def test_cron_requires_secret(self, run_batch_sync):
        self.client.logout()
        self.assertEqual(self.client.get('/api/cron/sync').status_code, 401)
        self.assertEqual(self.client.get('/api/cron/sync', HTTP_AUTHORIZATION='Bearer nope').status_code, 401)
        run_batch_sync.assert_not_called()

        response = self.client.post('/api/cron/sync', HTTP_AUTHORIZATION='Bearer shh')
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual((data['total'], data['successful'], data['failed']), (2, 1, 1))
        self.assertIn('durationMs', data)
        run_batch_sync.assert_called_once_with(24)


class FakeStore:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, timeout=None):
        self.data[key] = dict(value)


class RateLimiterTests(SimpleTestCase):
    def setUp(self):
        self.now = 1000.0
        self.limiter = RateLimiter(store=FakeStore(), clock=lambda: self.now)

    def test_fixed_window(self):
        results = [self.limiter.check('ip', 60, 3) for _ in range(4)]
        self.assertEqual([r.success for r in results], [True, True, True, False])
        self.assertEqual([r.remaining for r in results], [2, 1, 0, 0])
        self.assertEqual({r.reset_time for r in results}, {1060.0})

    def test_window_resets(self):
        for _ in range(4):
            self.limiter.check('ip', 60, 3)
        self.now = 1061.0
        result = self.limiter.check('ip', 60, 3)
        self.assertTrue(result.success)
        self.assertEqual(result.reset_time, 1121.0)

    def test_identifiers_are_independent(self):
        self.limiter.check('a', 60, 1)
        self.assertTrue(self.limiter.check('b', 60, 1).success)
        self.assertFalse(self.limiter.check('a', 60, 1).success)

    def test_headers(self):
        self.limiter.check('ip', 60, 1)
        blocked = self.limiter.check('ip', 60, 1)
        headers = blocked.headers(now=1030.5)
        self.assertEqual(headers['X-RateLimit-Remaining'], '0')
        self.assertEqual(headers['X-RateLimit-Reset'], '1060')
        self.assertEqual(headers['Retry-After'], '30')


class ClientIpTests(SimpleTestCase):
    def test_header_precedence(self):
        factory = RequestFactory()
        request = factory.get('/', HTTP_X_FORWARDED_FOR='1.1.1.1, 2.2.2.2', HTTP_X_REAL_IP='3.3.3.3')
        self.assertEqual(get_client_ip(request), '1.1.1.1')
        self.assertEqual(get_client_ip(factory.get('/', HTTP_X_REAL_IP='3.3.3.3')), '3.3.3.3')
        self.assertEqual(get_client_ip(factory.get('/')), 'unknown')
