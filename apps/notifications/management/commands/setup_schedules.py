"""
Management command to set up the Django-Q2 schedule for escalation processing.

This command creates/updates the scheduled task that runs the escalation
cycle every ESCALATION_ENGINE['PROCESSING_INTERVAL_MINUTES'] minutes.

Usage:
    python manage.py setup_schedules

The command is idempotent - safe to run multiple times.
An existing schedule is updated if its interval changes.
"""
from django.conf import settings
from django.core.management.base import BaseCommand
from django_q.models import Schedule

SCHEDULE_NAME = 'Escalation Cycle'


class Command(BaseCommand):
    help = 'Set up the Django-Q2 schedule for escalation processing'

    def handle(self, *args, **options):
        self.stdout.write('\nSetting up Django-Q2 schedules...\n')

        engine = getattr(settings, 'ESCALATION_ENGINE', {})
        minutes = engine.get('PROCESSING_INTERVAL_MINUTES', 5)

        # Evaluates every active template against every record
        schedule, created = Schedule.objects.update_or_create(
            name=SCHEDULE_NAME,
            defaults={
                'func': 'apps.notifications.tasks.run_escalation_cycle',
                'schedule_type': Schedule.MINUTES,
                'minutes': minutes,
                'repeats': -1,  # Run forever
            }
        )
        if created:
            self.stdout.write(
                self.style.SUCCESS(f'✓ Created schedule: {SCHEDULE_NAME} (every {minutes} min)')
            )
        else:
            self.stdout.write(
                self.style.WARNING(f'↻ Updated schedule: {SCHEDULE_NAME} (every {minutes} min)')
            )

        self.stdout.write('')
        self.stdout.write('Schedule Summary:')
        self.stdout.write(f'  • {SCHEDULE_NAME}  → Runs every {minutes} minute(s)')
        self.stdout.write('')
        self.stdout.write(
            self.style.NOTICE(
                'Note: Ensure Django-Q cluster is running: python manage.py qcluster'
            )
        )
        self.stdout.write('')
