# wordgame/management/commands/show_leaderboard.py
from django.apps import apps
from django.core.management.base import BaseCommand

from wordgame.scores import format_date


class Command(BaseCommand):
    help = 'Prints the leaderboard, fewest attempts first'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=None, help='Show only the first N entries')

    def handle(self, *args, **options):
        entries = apps.get_app_config('wordgame').score_store.all_entries()
        if options['limit'] is not None:
            entries = entries[:options['limit']]

        if not entries:
            self.stdout.write(self.style.WARNING('No scores yet'))
            return

        for rank, entry in enumerate(entries, start=1):
            self.stdout.write(
                f"{rank}. {entry.name} - {entry.score} attempts "
                f"[{', '.join(entry.guesses)}] {format_date(entry)}"
            )

        self.stdout.write(self.style.SUCCESS(f'{len(entries)} entries'))
