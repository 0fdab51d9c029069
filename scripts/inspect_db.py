import os
import sys
from pathlib import Path

# Ensure project root is on sys.path so 'SpotifyMirror' package can be imported
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'SpotifyMirror.settings')
import django
django.setup()
from django.db import connection

from Mirrorapp.models import Follow, FollowRequest, ListeningHistory, Profile, SpotifySnapshot

cur = connection.cursor()
print('TABLES:', connection.introspection.table_names())
cur.execute("SELECT app, name FROM django_migrations WHERE app='Mirrorapp'")
print('MIGRATIONS:', cur.fetchall())
print('PROFILES:', Profile.objects.count(), 'synced:', Profile.objects.filter(last_synced_at__isnull=False).count())
print('SNAPSHOTS:', SpotifySnapshot.objects.count())
print('HISTORY ROWS:', ListeningHistory.objects.count())
print('FOLLOWS:', Follow.objects.count(), 'pending requests:', FollowRequest.objects.filter(status=FollowRequest.PENDING).count())
