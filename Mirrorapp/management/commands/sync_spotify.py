from django.core.management.base import BaseCommand

from ...sync import run_batch_sync


class Command(BaseCommand):
    help = 'Refresh Spotify snapshots, listening history and badges for users whose last sync is stale'

    def add_arguments(self, parser):
        parser.add_argument('--hours', type=int, default=24,
                            help='Sync users whose last sync is older than this many hours')
        parser.add_argument('--delay', type=float, default=0.1,
                            help='Seconds to wait between users, to stay under Spotify rate limits')

    def handle(self, *args, **options):
        result = run_batch_sync(hours_old=options['hours'], delay=options['delay'])
        self.stdout.write(
            f"Synced {result['successful']}/{result['total']} users ({result['failed']} failed)"
        )
