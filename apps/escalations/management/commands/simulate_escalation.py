"""
Management command to preview an escalation template against a record.

Nothing is sent and no escalation state is written.

Usage:
    python manage.py simulate_escalation <template_id> <record_reference>
    python manage.py simulate_escalation 3 INC-2025-001 --at 2025-12-13T17:00:00+00:00
"""
from django.core.management.base import BaseCommand, CommandError

from apps.escalations.models import EscalationTemplate
from apps.escalations.rules import applies
from apps.escalations.services import simulate_template
from apps.records.models import SafetyRecord

from ._utils import parse_at


class Command(BaseCommand):
    help = 'Preview which escalation levels a template would fire for a record'

    def add_arguments(self, parser):
        parser.add_argument('template_id', type=int)
        parser.add_argument('record_reference')
        parser.add_argument(
            '--at',
            help='Evaluation time (ISO 8601). Defaults to now.',
        )

    def handle(self, *args, **options):
        try:
            template = EscalationTemplate.objects.get(pk=options['template_id'])
        except EscalationTemplate.DoesNotExist:
            raise CommandError(f"Template {options['template_id']} does not exist")
        try:
            record = SafetyRecord.objects.get(reference=options['record_reference'])
        except SafetyRecord.DoesNotExist:
            raise CommandError(f"Record {options['record_reference']} does not exist")

        now = parse_at(options.get('at'))
        results = simulate_template(template, record, now=now)

        applicable = applies(template.applicability_rules, record.as_record())
        self.stdout.write(f'\n{template.name} (v{template.version}) x {record.reference} at {now.isoformat()}')
        self.stdout.write(f"Applies to record: {'yes' if applicable else 'no'}\n")

        for result in results:
            line = f'  Level {result.level} [{result.kind}] {result.status}'
            if result.description:
                line += f' - {result.description}'
            if result.trigger_date:
                line += f' (trigger date {result.trigger_date.isoformat()})'
            if result.error:
                self.stdout.write(self.style.ERROR(f'{line}: {result.error}'))
            else:
                self.stdout.write(line)
            if result.subject:
                self.stdout.write(f'      Subject: {result.subject}')
        if not results:
            self.stdout.write('  No triggers configured')
        self.stdout.write('')
