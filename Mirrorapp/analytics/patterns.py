"""Hour-of-day / day-of-week listening histogram and duration helpers."""

from datetime import tzinfo
from typing import Dict, List, Optional, Tuple

from django.utils import timezone

from ..types import ListeningPattern, PlayEvent


def _local_hour_and_weekday(played_at, tz: Optional[tzinfo]) -> Tuple[int, int]:
    if timezone.is_aware(played_at):
        played_at = timezone.localtime(played_at, tz or timezone.get_current_timezone())
    # isoweekday: Monday=1 .. Sunday=7, we want Sunday=0
    return played_at.hour, played_at.isoweekday() % 7


def bucket_plays_by_hour_and_weekday(events: List[PlayEvent], tz: Optional[tzinfo] = None) -> List[ListeningPattern]:
    """Return exactly 168 cells, Sunday first, hours 0-23 within each day.

    Aware timestamps are converted to ``tz`` (the active Django time zone by
    default) before bucketing; naive ones are read as already local.
    """
    buckets: Dict[Tuple[int, int], int] = {}
    for event in events:
        key = _local_hour_and_weekday(event.played_at, tz)
        buckets[key] = buckets.get(key, 0) + 1

    patterns = []
    for day_of_week in range(7):
        for hour in range(24):
            patterns.append(ListeningPattern(
                hour=hour,
                day_of_week=day_of_week,
                count=buckets.get((hour, day_of_week), 0),
            ))
    return patterns


def calculate_total_listening_time(events: List[PlayEvent]) -> int:
    return sum(event.duration_ms for event in events)


def format_duration(ms: int) -> str:
    hours = ms // (1000 * 60 * 60)
    minutes = (ms % (1000 * 60 * 60)) // (1000 * 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
