import json
import logging
import math
import time
from datetime import timedelta
from functools import wraps

import requests
from django.conf import settings
from django.contrib.auth import get_user_model, login as auth_login, logout as auth_logout
from django.db import transaction
from django.db.models import Count, Q
from django.http import JsonResponse
from django.shortcuts import redirect
from django.urls import reverse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from requests import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from spotipy import Spotify, SpotifyException

from . import extras
from .analytics import (
    aggregate_genres_from_artists,
    assign_badges,
    bucket_plays_by_hour_and_weekday,
    calculate_total_listening_time,
    compute_extended_stats,
    extract_top_albums_from_tracks,
    get_top_genres,
)
from .credentials import CLIENT_ID, CLIENT_SECRET, CRON_SECRET, REDIRECT_URI, SCOPES
from .forms import SettingsForm, settings_payload
from .models import Follow, FollowRequest, Profile, get_profile
from .profiles import build_public_profile, find_user
from .rate_limit import RateLimiter, get_client_ip
from .sync import mark_synced, run_batch_sync, save_snapshots, store_listening_history, sync_user_data
from .types import TIME_RANGES, BadgeContext

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"

search_limiter = RateLimiter()


def api_login_required(view):
    """Like ``login_required`` but answers 401 JSON instead of redirecting."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'error': 'Unauthorized'}, status=401)
        return view(request, *args, **kwargs)
    return wrapper


def _json_body(request):
    try:
        body = json.loads(request.body.decode('utf-8') or '{}')
    except (ValueError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _int_param(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _user_card(user):
    profile = get_profile(user)
    return {
        'id': str(user.pk),
        'name': profile.public_name(),
        'username': profile.username,
        'image': profile.image_url,
        'bio': profile.bio,
    }


def _get_user_or_none(user_id):
    if user_id is None or not str(user_id).isdigit():
        return None
    return get_user_model().objects.filter(pk=int(user_id)).first()


# --- sign-in ---

class AuthenticationURL(APIView):
    def get(self, request, format=None):
        url = Request("GET", AUTHORIZE_URL, params={
            "scope": SCOPES,
            "response_type": "code",
            "redirect_uri": REDIRECT_URI,
            "client_id": CLIENT_ID,
        }).prepare().url
        return redirect(url)


def spotify_redirect(request, format=None):
    code = request.GET.get("code")
    error = request.GET.get("error")

    if error or not code:
        logger.warning(f"Spotify auth error: {error or 'missing code'}")
        return JsonResponse({'error': error or 'Missing authorization code'}, status=400)

    try:
        response = requests.post(extras.TOKEN_URL, data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET
        }, timeout=extras.REQUEST_TIMEOUT)
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Token exchange failed: {e}")
        return JsonResponse({'error': 'Token exchange failed'}, status=502)

    access_token = payload.get("access_token")
    refresh_token = payload.get("refresh_token")
    expires_in = payload.get("expires_in")
    token_type = payload.get("token_type")

    if not all([access_token, refresh_token, expires_in, token_type]):
        logger.error(f"Missing token data in Spotify response: {sorted(payload)}")
        return JsonResponse({'error': 'Token exchange failed'}, status=502)

    try:
        me = Spotify(auth=access_token, requests_timeout=extras.REQUEST_TIMEOUT).current_user()
    except (SpotifyException, requests.RequestException) as e:
        logger.error(f"Could not fetch Spotify profile: {e}")
        return JsonResponse({'error': 'Could not fetch Spotify profile'}, status=502)

    user = _sign_in_spotify_user(me)
    auth_login(request, user)

    extras.create_or_update_spotifyTokens(
        user=user,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=timezone.now() + timedelta(seconds=expires_in),
        token_type=token_type
    )
    logger.info(f"Signed in {user.username}")
    return redirect(reverse('dashboard'))


def _sign_in_spotify_user(me):
    """Find or create the Django user for a Spotify account and refresh its profile fields."""
    spotify_id = me['id']
    User = get_user_model()
    user, created = User.objects.get_or_create(
        username=f"spotify_{spotify_id}",
        defaults={'email': me.get('email') or ''},
    )
    if created:
        user.set_unusable_password()
        user.save(update_fields=['password'])

    profile = get_profile(user)
    profile.spotify_id = spotify_id
    profile.display_name = me.get('display_name') or ''
    profile.image_url = extras.first_image_url(me.get('images'))
    profile.save(update_fields=['spotify_id', 'display_name', 'image_url'])
    return user


class CheckAuthentication(APIView):
    def get(self, request, format=None):
        if not request.user.is_authenticated:
            return Response({'authenticated': False, 'spotifyConnected': False})
        return Response({
            'authenticated': True,
            'spotifyConnected': extras.is_spotify_authenticated(request.user),
        })


@require_http_methods(["POST"])
def logout(request):
    auth_logout(request)
    return JsonResponse({'success': True})


# --- dashboard and profiles ---

@api_login_required
@require_http_methods(["GET"])
def dashboard(request):
    user = request.user
    client = extras.get_spotify_client(user)
    if client is None:
        return JsonResponse({'error': 'Spotify not connected'}, status=401)

    try:
        artists = {tr: extras.fetch_top_artists(client, tr, limit=20) for tr in TIME_RANGES}
        tracks = {tr: extras.fetch_top_tracks(client, tr, limit=50) for tr in TIME_RANGES}
        recent = extras.fetch_recently_played(client, limit=50)
    except (SpotifyException, requests.RequestException) as e:
        logger.error(f"Dashboard fetch failed for {user.username}: {e}")
        return JsonResponse({'error': 'Failed to load data from Spotify'}, status=502)

    try:
        audio_features = extras.fetch_audio_features(client, [t.id for t in tracks['medium_term']])
    except (SpotifyException, requests.RequestException) as e:
        logger.warning(f"Could not fetch audio features for {user.username}: {e}")
        audio_features = []

    save_snapshots(user, artists, tracks)
    store_listening_history(user, recent)
    profile = mark_synced(user)

    events = [p.as_event() for p in recent]
    medium_artists = artists['medium_term']
    medium_tracks = tracks['medium_term']
    genres = aggregate_genres_from_artists(medium_artists)
    patterns = bucket_plays_by_hour_and_weekday(events)
    total_listening_time = calculate_total_listening_time(events)
    unique_artists = len({a.id for a in medium_artists})
    unique_tracks = len({t.id for t in medium_tracks})

    extended_stats = compute_extended_stats(
        short_term_tracks=tracks['short_term'],
        medium_term_tracks=medium_tracks,
        short_term_artists=artists['short_term'],
        medium_term_artists=medium_artists,
        long_term_artists=artists['long_term'],
        audio_features=audio_features,
        listening_patterns=patterns,
    )
    badges = assign_badges(BadgeContext(
        top_artists=medium_artists,
        genres=genres,
        unique_artists_count=unique_artists,
        unique_tracks_count=unique_tracks,
        total_listening_time_ms=total_listening_time,
    ))

    def by_range(values):
        return {
            'shortTerm': [v.as_dict() for v in values['short_term']],
            'mediumTerm': [v.as_dict() for v in values['medium_term']],
            'longTerm': [v.as_dict() for v in values['long_term']],
        }

    albums = {tr: extract_top_albums_from_tracks(tracks[tr]) for tr in TIME_RANGES}

    return JsonResponse({
        'user': {
            'name': profile.public_name(),
            'email': user.email,
            'image': profile.image_url,
        },
        'stats': {
            'totalListeningTimeMs': total_listening_time,
            'uniqueArtists': unique_artists,
            'uniqueTracks': unique_tracks,
            'topGenre': genres[0].genre if genres else None,
        },
        'extendedStats': extended_stats.as_dict(),
        'topArtists': by_range(artists),
        'topTracks': by_range(tracks),
        'topAlbums': by_range(albums),
        'genres': [g.as_dict() for g in get_top_genres(genres, 10)],
        'listeningPatterns': [p.as_dict() for p in patterns],
        'badges': [b.as_dict() for b in badges],
        'lastSyncedAt': profile.last_synced_at.isoformat() if profile.last_synced_at else None,
    })


@require_http_methods(["GET"])
def public_profile(request, identifier):
    owner = find_user(identifier)
    if owner is None:
        return JsonResponse({'error': 'User not found'}, status=404)
    return JsonResponse(build_public_profile(owner, request.user))


@api_login_required
@require_http_methods(["GET", "PATCH"])
def user_settings(request):
    profile = get_profile(request.user)
    if request.method == "GET":
        return JsonResponse(settings_payload(profile))

    body = _json_body(request)
    if body is None:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    form = SettingsForm(body, profile)
    if not form.is_valid():
        return JsonResponse({'error': form.first_error()}, status=form.error_status())

    profile = form.apply()
    return JsonResponse(settings_payload(profile))


# --- sync ---

@api_login_required
@require_http_methods(["POST"])
def manual_sync(request):
    cooldown = getattr(settings, 'MIRROR_SYNC_COOLDOWN_SECONDS', 300)
    profile = get_profile(request.user)

    if profile.last_synced_at:
        elapsed = (timezone.now() - profile.last_synced_at).total_seconds()
        if elapsed < cooldown:
            wait = math.ceil(cooldown - elapsed)
            return JsonResponse({'error': f"Please wait {wait} seconds before syncing again"}, status=429)

    if not sync_user_data(request.user):
        return JsonResponse({'error': 'Failed to sync data. Please try logging in again.'}, status=500)

    return JsonResponse({'success': True, 'syncedAt': timezone.now().isoformat()})


@csrf_exempt
@require_http_methods(["GET", "POST"])
def cron_sync(request):
    if CRON_SECRET and request.headers.get('Authorization') != f"Bearer {CRON_SECRET}":
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    logger.info("Starting batch sync...")
    started = time.monotonic()
    result = run_batch_sync(24)
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"Batch sync completed: {result['successful']}/{result['total']} successful in {duration_ms}ms")

    return JsonResponse({
        'success': True,
        **result,
        'durationMs': duration_ms,
        'timestamp': timezone.now().isoformat(),
    })


# --- social ---

@require_http_methods(["GET", "POST", "DELETE"])
def follow(request):
    if request.method == "GET":
        return _follow_list(request)
    if not request.user.is_authenticated:
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    body = _json_body(request)
    target_id = body.get('userId') if body else None
    if target_id in (None, ''):
        return JsonResponse({'error': 'User ID is required'}, status=400)

    if request.method == "DELETE":
        return _unfollow(request.user, target_id)

    if str(target_id) == str(request.user.pk):
        return JsonResponse({'error': 'Cannot follow yourself'}, status=400)

    target = _get_user_or_none(target_id)
    if target is None:
        return JsonResponse({'error': 'User not found'}, status=404)

    if Follow.objects.filter(follower=request.user, following=target).exists():
        return JsonResponse({'error': 'Already following this user'}, status=409)

    visibility = get_profile(target).profile_visibility
    if visibility == Profile.PRIVATE:
        return JsonResponse({'error': 'This user has a private profile and cannot be followed'}, status=403)

    if visibility == Profile.FOLLOWERS:
        follow_request, created = FollowRequest.objects.get_or_create(from_user=request.user, to_user=target)
        if not created and follow_request.status == FollowRequest.PENDING:
            return JsonResponse({'message': 'Follow request already pending', 'status': 'pending'})
        if not created:
            # a rejected (or stale accepted) request is re-opened
            follow_request.status = FollowRequest.PENDING
            follow_request.save(update_fields=['status', 'updated_at'])
        return JsonResponse({'message': 'Follow request sent', 'status': 'pending'})

    # a concurrent follow of the same user may have landed since the check above
    Follow.objects.get_or_create(follower=request.user, following=target)
    return JsonResponse({'message': 'Now following user', 'status': 'following'})


def _unfollow(user, target_id):
    if not str(target_id).isdigit():
        return JsonResponse({'message': 'Follow/request removed'})
    deleted, _ = Follow.objects.filter(follower=user, following_id=int(target_id)).delete()
    FollowRequest.objects.filter(from_user=user, to_user_id=int(target_id)).delete()
    if deleted:
        return JsonResponse({'message': 'Unfollowed user'})
    return JsonResponse({'message': 'Follow/request removed'})


def _follow_list(request):
    list_type = request.GET.get('type', 'followers')
    user_id = request.GET.get('userId') or (request.user.pk if request.user.is_authenticated else None)
    if not user_id:
        return JsonResponse({'error': 'User ID required'}, status=400)
    if not str(user_id).isdigit():
        return JsonResponse({'error': 'Invalid user ID'}, status=400)
    user_id = int(user_id)

    if list_type == 'followers':
        follows = Follow.objects.filter(following_id=user_id).select_related('follower')
        users = [dict(_user_card(f.follower), followedAt=f.created_at.isoformat()) for f in follows]
    elif list_type == 'following':
        follows = Follow.objects.filter(follower_id=user_id).select_related('following')
        users = [dict(_user_card(f.following), followedAt=f.created_at.isoformat()) for f in follows]
    else:
        return JsonResponse({'error': 'Invalid type'}, status=400)

    return JsonResponse({'users': users, 'count': len(users)})


@api_login_required
@require_http_methods(["GET", "POST", "DELETE"])
def follow_requests(request):
    if request.method == "GET":
        pending = FollowRequest.objects.filter(
            to_user=request.user, status=FollowRequest.PENDING,
        ).select_related('from_user')
        requests_data = [{
            'id': str(r.pk),
            'fromUser': _user_card(r.from_user),
            'status': r.status,
            'createdAt': r.created_at.isoformat(),
        } for r in pending]
        return JsonResponse({'requests': requests_data, 'count': len(requests_data)})

    body = _json_body(request) or {}

    if request.method == "DELETE":
        follower_id = body.get('userId')
        if follower_id in (None, '') or not str(follower_id).isdigit():
            return JsonResponse({'error': 'User ID is required'}, status=400)
        deleted, _ = Follow.objects.filter(follower_id=int(follower_id), following=request.user).delete()
        if not deleted:
            return JsonResponse({'error': 'This user is not following you'}, status=404)
        return JsonResponse({'message': 'Follower removed'})

    request_id = body.get('requestId')
    action = body.get('action')
    if request_id in (None, ''):
        return JsonResponse({'error': 'Request ID is required'}, status=400)
    if action not in ('accept', 'reject'):
        return JsonResponse({'error': "Action must be 'accept' or 'reject'"}, status=400)

    follow_request = FollowRequest.objects.filter(pk=request_id).first() if str(request_id).isdigit() else None
    if follow_request is None:
        return JsonResponse({'error': 'Request not found'}, status=404)
    if follow_request.to_user_id != request.user.pk:
        return JsonResponse({'error': 'Unauthorized'}, status=403)
    if follow_request.status != FollowRequest.PENDING:
        return JsonResponse({'error': 'Request has already been processed'}, status=400)

    if action == 'accept':
        with transaction.atomic():
            Follow.objects.get_or_create(follower_id=follow_request.from_user_id, following=request.user)
            follow_request.status = FollowRequest.ACCEPTED
            follow_request.save(update_fields=['status', 'updated_at'])
        return JsonResponse({'message': 'Follow request accepted'})

    follow_request.status = FollowRequest.REJECTED
    follow_request.save(update_fields=['status', 'updated_at'])
    return JsonResponse({'message': 'Follow request rejected'})


# --- discover ---

@require_http_methods(["GET"])
def search_users(request):
    limits = getattr(settings, 'MIRROR_SEARCH_RATE_LIMIT', {'window_seconds': 60, 'max_requests': 30})
    result = search_limiter.check(f"search:{get_client_ip(request)}", limits['window_seconds'], limits['max_requests'])
    headers = result.headers(search_limiter.clock())

    if not result.success:
        response = JsonResponse({'error': 'Too many requests. Please try again later.'}, status=429)
        for name, value in headers.items():
            response[name] = value
        return response

    query = request.GET.get('q', '').strip()
    limit = max(0, min(_int_param(request.GET.get('limit'), 20), 50))
    offset = max(0, _int_param(request.GET.get('offset'), 0))

    if len(query) < 2:
        users, total = [], 0
    else:
        profiles = Profile.objects.filter(
            profile_visibility__in=[Profile.PUBLIC, Profile.FOLLOWERS],
        ).filter(Q(display_name__icontains=query) | Q(username__icontains=query))
        if request.user.is_authenticated:
            profiles = profiles.exclude(user=request.user)

        total = profiles.count()
        page = list(
            profiles.select_related('user')
            .annotate(follower_count=Count('user__follower_set'))
            .order_by('-follower_count', 'display_name')[offset:offset + limit]
        )

        following_ids = set()
        if request.user.is_authenticated:
            following_ids = set(Follow.objects.filter(
                follower=request.user, following__in=[p.user for p in page],
            ).values_list('following_id', flat=True))

        users = [dict(_user_card(p.user), isFollowing=p.user_id in following_ids) for p in page]

    response = JsonResponse({'users': users, 'total': total})
    for name, value in headers.items():
        response[name] = value
    return response


@require_http_methods(["GET"])
def recent_users(request):
    limit = max(0, min(_int_param(request.GET.get('limit'), 10), 20))
    profiles = Profile.objects.filter(
        profile_visibility=Profile.PUBLIC, last_synced_at__isnull=False,
    ).select_related('user')
    if request.user.is_authenticated:
        profiles = profiles.exclude(user=request.user)

    users = [_user_card(p.user) for p in profiles.order_by('-created_at')[:limit]]
    return JsonResponse({'users': users})
