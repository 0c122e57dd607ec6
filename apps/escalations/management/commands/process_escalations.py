"""
Management command to run one escalation cycle now.

The scheduled job (apps.notifications.tasks.run_escalation_cycle) runs the
same cycle every few minutes; this command is for manual runs and backfills.

Usage:
    python manage.py process_escalations
    python manage.py process_escalations --at 2025-12-13T17:00:00+00:00
"""
from django.core.management.base import BaseCommand

from apps.escalations.services import process_escalations

from ._utils import parse_at


class Command(BaseCommand):
    help = 'Evaluate every active escalation template against every record'

    def add_arguments(self, parser):
        parser.add_argument(
            '--at',
            help='Evaluation time (ISO 8601). Defaults to now.',
        )

    def handle(self, *args, **options):
        now = parse_at(options.get('at'))
        self.stdout.write(f'\nProcessing escalations at {now.isoformat()}...\n')

        summary = process_escalations(now=now)

        for name, value in summary.as_dict().items():
            self.stdout.write(f'  • {name.replace("_", " "):<13} {value}')
        self.stdout.write('')

        if summary.errors or summary.failed:
            self.stdout.write(self.style.WARNING(
                f'Done with {summary.failed} failed notification(s) and {summary.errors} error(s). '
                f'See the notification log for details.'
            ))
        else:
            self.stdout.write(self.style.SUCCESS(f'Done! {summary.sent} notification(s) sent.'))
