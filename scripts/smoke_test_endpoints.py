"""Simple smoke tests using Django test client.

This script will:
- Create (or reuse) a signed-in test user
- PATCH /api/user/settings to set a handle and bio
- GET the public profile by that handle
- Search for the handle and list recent users

Run with the project's Django settings (from repo root):
python scripts/smoke_test_endpoints.py
"""

import json
import os
import django

# Setup Django environment
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'SpotifyMirror.settings')
import sys
sys.path.insert(0, PROJECT_ROOT)

django.setup()

from django.contrib.auth import get_user_model
from django.test import Client
from django.utils import timezone
from Mirrorapp.models import get_profile


def run():
    User = get_user_model()
    user, created = User.objects.get_or_create(username='spotify_smoketest', defaults={'email': 'smoke@example.com'})
    print(('Created test user:' if created else 'Reused test user:'), user.username)

    # search and recent only list users that synced at least once
    profile = get_profile(user)
    profile.last_synced_at = profile.last_synced_at or timezone.now()
    profile.save()

    client = Client()
    client.force_login(user)

    resp = client.patch('/api/user/settings', json.dumps({'username': 'smoketest', 'bio': 'Smoke test bio'}),
                        content_type='application/json')
    print('/api/user/settings PATCH status:', resp.status_code, resp.json())

    profile_resp = client.get('/api/user/smoketest')
    print('/api/user/smoketest GET status:', profile_resp.status_code)
    if profile_resp.status_code == 200:
        print('Bio in profile:', profile_resp.json()['user']['bio'])

    # search leaves out the signed-in user, so this lists other matches only
    search_resp = client.get('/api/users/search', {'q': 'smoke'})
    print('/api/users/search GET status:', search_resp.status_code,
          'remaining:', search_resp.get('X-RateLimit-Remaining'))
    if search_resp.status_code == 200:
        print('Search results:', [u['username'] for u in search_resp.json()['users']])

    recent_resp = client.get('/api/users/recent')
    print('/api/users/recent GET status:', recent_resp.status_code)


if __name__ == '__main__':
    run()
