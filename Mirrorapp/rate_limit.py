"""Fixed-window request limiting.

Counters live in any store with Django's cache ``get``/``set(key, value,
timeout)`` interface (the ``default`` cache unless another one is passed), so
switching to a shared cache such as Redis needs no change at the call sites.
The clock is injectable for tests.
"""

import math
import time
from dataclasses import dataclass

from django.core.cache import caches


@dataclass
class RateLimitResult:
    success: bool
    remaining: int
    reset_time: float  # epoch seconds

    def headers(self, now):
        headers = {
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(int(self.reset_time)),
        }
        if not self.success:
            headers['Retry-After'] = str(max(0, math.ceil(self.reset_time - now)))
        return headers


class RateLimiter:
    key_prefix = 'ratelimit'

    def __init__(self, store=None, clock=None):
        self.store = store if store is not None else caches['default']
        self.clock = clock or time.time

    def check(self, identifier, window_seconds, max_requests):
        now = self.clock()
        key = f"{self.key_prefix}:{identifier}"
        entry = self.store.get(key)

        if not entry or entry['reset_time'] < now:
            entry = {'count': 1, 'reset_time': now + window_seconds}
            self.store.set(key, entry, timeout=math.ceil(window_seconds))
            return RateLimitResult(success=True, remaining=max_requests - 1, reset_time=entry['reset_time'])

        entry['count'] += 1
        # keep the original expiry; the window does not slide
        self.store.set(key, entry, timeout=max(1, math.ceil(entry['reset_time'] - now)))

        if entry['count'] > max_requests:
            return RateLimitResult(success=False, remaining=0, reset_time=entry['reset_time'])

        return RateLimitResult(success=True, remaining=max_requests - entry['count'], reset_time=entry['reset_time'])


def get_client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    real_ip = request.META.get('HTTP_X_REAL_IP')
    if real_ip:
        return real_ip
    return 'unknown'
