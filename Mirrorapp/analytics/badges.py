"""Badge catalogue and assignment.

Badges are a declarative rule table: each definition carries its display
metadata and a predicate over a ``BadgeContext``. Adding a badge means adding
a row, not another branch.
"""

from typing import Dict, List

from django.utils import timezone

from ..types import Badge, BadgeContext, BadgeDefinition


def _top_genres_contain(ctx: BadgeContext, *needles: str) -> bool:
    return any(
        needle in stat.genre.lower()
        for stat in ctx.genres[:3]
        for needle in needles
    )


BADGE_DEFINITIONS = [
    BadgeDefinition(
        id='explorer',
        name='Music Explorer',
        description='Listened to 50+ unique artists',
        icon='compass',
        check=lambda ctx: ctx.unique_artists_count >= 50,
    ),
    BadgeDefinition(
        id='diverse',
        name='Genre Hopper',
        description='Your top artists span 10+ genres',
        icon='shuffle',
        check=lambda ctx: len(ctx.genres) >= 10,
    ),
    BadgeDefinition(
        id='dedicated',
        name='Dedicated Listener',
        description='Over 10 hours of listening time',
        icon='headphones',
        check=lambda ctx: ctx.total_listening_time_ms >= 10 * 60 * 60 * 1000,
    ),
    BadgeDefinition(
        id='mainstream',
        name='Mainstream Maven',
        description='Your top artist has 80+ popularity',
        icon='trending-up',
        check=lambda ctx: bool(ctx.top_artists) and ctx.top_artists[0].popularity >= 80,
    ),
    BadgeDefinition(
        id='underground',
        name='Underground Scout',
        description='Found an artist with <40 popularity in your top 10',
        icon='search',
        check=lambda ctx: any(a.popularity < 40 for a in ctx.top_artists[:10]),
    ),
    BadgeDefinition(
        id='loyal',
        name='Loyal Fan',
        description='Same #1 artist across all time ranges',
        icon='heart',
        # TODO: needs the #1 artist of every time range in BadgeContext before it can be checked
        check=lambda ctx: False,
    ),
    BadgeDefinition(
        id='collector',
        name='Track Collector',
        description='100+ unique tracks in your history',
        icon='library',
        check=lambda ctx: ctx.unique_tracks_count >= 100,
    ),
    BadgeDefinition(
        id='pop_lover',
        name='Pop Enthusiast',
        description='Pop is in your top 3 genres',
        icon='music',
        check=lambda ctx: _top_genres_contain(ctx, 'pop'),
    ),
    BadgeDefinition(
        id='rock_fan',
        name='Rock Spirit',
        description='Rock is in your top 3 genres',
        icon='guitar',
        check=lambda ctx: _top_genres_contain(ctx, 'rock'),
    ),
    BadgeDefinition(
        id='hip_hop_head',
        name='Hip Hop Head',
        description='Hip hop or rap is in your top 3 genres',
        icon='mic',
        check=lambda ctx: _top_genres_contain(ctx, 'hip hop', 'rap'),
    ),
]


def assign_badges(context: BadgeContext, now=None) -> List[Badge]:
    """Return the badges whose rule holds, stamped with ``now``.

    Badges that are not earned are left out rather than returned with an
    empty ``earned_at``.
    """
    earned_at = now or timezone.now()
    return [
        Badge(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            icon=definition.icon,
            earned_at=earned_at,
        )
        for definition in BADGE_DEFINITIONS
        if definition.check(context)
    ]


def get_all_badge_definitions() -> List[Dict[str, str]]:
    return [
        {
            'id': d.id,
            'name': d.name,
            'description': d.description,
            'icon': d.icon,
        }
        for d in BADGE_DEFINITIONS
    ]
