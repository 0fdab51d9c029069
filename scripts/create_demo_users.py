#!/usr/bin/env python3
"""
Create a few demo users with public handles and medium-term snapshots so
search, public profiles and compatibility have something to show.
Run from repo root:
    python3 scripts/create_demo_users.py
"""
import os
import django
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'SpotifyMirror.settings')
import sys
sys.path.insert(0, PROJECT_ROOT)

django.setup()

from django.contrib.auth import get_user_model
from django.utils import timezone
from Mirrorapp.models import Profile, SpotifySnapshot, get_profile
from Mirrorapp.snapshots import replace_snapshot
from Mirrorapp.types import ArtistSummary, TrackSummary

User = get_user_model()

users = [
    ('alice', Profile.PUBLIC, 'Indie and alt, late-night guitar.', ['phoebe', 'boygenius', 'wednesday'], ['indie', 'folk']),
    ('ben', Profile.PUBLIC, 'Rap and trap, concert regular.', ['kendrick', 'future', 'phoebe'], ['hip hop', 'trap']),
    ('cara', Profile.FOLLOWERS, 'Pop and R&B, vinyl collector.', ['sza', 'beyonce', 'boygenius'], ['pop', 'r&b']),
    ('dan', Profile.PRIVATE, 'Emo and punk.', ['title fight', 'wednesday'], ['emo', 'punk']),
]

for handle, visibility, bio, artist_ids, genres in users:
    user, _ = User.objects.get_or_create(username=f'spotify_demo_{handle}', defaults={'email': f'{handle}@example.com'})
    profile = get_profile(user)
    profile.username = handle
    profile.display_name = handle.title()
    profile.bio = bio
    profile.profile_visibility = visibility
    profile.has_completed_onboarding = True
    profile.last_synced_at = timezone.now()
    profile.save()

    artists = [ArtistSummary(id=a, name=a.title(), genres=genres, popularity=60) for a in artist_ids]
    tracks = [
        TrackSummary(id=f'{handle}-t{i}', name=f'{handle.title()} Track {i}', artist_names=[artists[i % len(artists)].name],
                     album_id=f'{handle}-al{i % 2}', duration_ms=180000, popularity=50)
        for i in range(6)
    ]
    replace_snapshot(user, SpotifySnapshot.ARTISTS, 'medium_term', artists)
    replace_snapshot(user, SpotifySnapshot.TRACKS, 'medium_term', tracks)
    print(f'- {handle} ({visibility}): {len(artists)} artists, {len(tracks)} tracks')

print('\nDemo users have no Spotify tokens, so scheduled syncs skip them.\n')
