import os

# Spotify app credentials come from the environment; there are no usable defaults.
CLIENT_ID = os.environ.get('SPOTIFY_CLIENT_ID', '')
CLIENT_SECRET = os.environ.get('SPOTIFY_CLIENT_SECRET', '')
# The env var may be set to the base URL; ensure the app uses the full redirect path.
_raw_redirect = os.environ.get('SPOTIFY_REDIRECT_URI', 'http://127.0.0.1:8000/')
if _raw_redirect.endswith('/'):
	REDIRECT_URI = _raw_redirect + 'redirect/' if not _raw_redirect.endswith('/redirect/') else _raw_redirect
else:
	REDIRECT_URI = _raw_redirect if _raw_redirect.endswith('/redirect') else _raw_redirect + '/redirect'

# Shared secret the scheduler sends as "Authorization: Bearer <secret>" to /api/cron/sync.
CRON_SECRET = os.environ.get('CRON_SECRET', '')

SCOPES = "user-read-email user-read-private user-top-read user-read-recently-played"
