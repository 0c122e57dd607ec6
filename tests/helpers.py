"""
Shared fixtures for escalation tests.
"""

import threading
from datetime import datetime, timezone as dt_timezone

from apps.escalations.conf import EngineConfig
from apps.escalations.definitions import DeliveryResult, Recipient, Template
from apps.escalations.orchestrator import EscalationOrchestrator
from apps.escalations.state import InMemoryEscalationStateStore
from apps.escalations.stores import InMemoryRecordStore

NOW = datetime(2025, 12, 13, 17, 0, tzinfo=dt_timezone.utc)


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def template_data(**overrides):
    """A valid template definition (JSON form)."""
    data = {
        'id': '1',
        'name': 'Critical Incident Escalation',
        'module': 'incidents',
        'description': 'Escalates open critical incidents',
        'active': True,
        'applicability_rules': [
            {'field': 'priority', 'operator': 'equals', 'value': 'Critical', 'logic': 'AND'},
        ],
        'hierarchy': [
            {'level': 1, 'roles': ['direct-manager'], 'fallback_email': 'ehs-team@example.com'},
            {'level': 2, 'roles': ['department-head']},
            {'level': 3, 'roles': ['site-manager']},
        ],
        'triggers': [
            {'type': 'event-based', 'level': 1, 'field': 'status', 'value': 'Open'},
        ],
        'notification_templates': {
            'email': {
                'subject': 'Incident {{id}}: {{title}}',
                'body': 'Please review {{id}} at {{location}}.\n{{actionUrl}}',
            },
            'sms': 'Incident {{id}} at {{location}}',
        },
    }
    data.update(overrides)
    return data


def make_template(**overrides):
    return Template.from_dict(template_data(**overrides))


def make_record(**overrides):
    record = {
        'id': 'INC-2025-001',
        'title': 'Chemical Spill in Lab A',
        'priority': 'Critical',
        'status': 'Open',
        'location': 'Laboratory A',
        'department': 'Chemistry',
    }
    record.update(overrides)
    return record


DANA = Recipient(
    name='Dana Reyes', email='dana.reyes@example.com', phone='+15550000001',
    role='direct-manager', department='Chemistry',
)
SAM = Recipient(
    name='Sam Okafor', email='sam.okafor@example.com',
    role='department-head', department='Chemistry',
)
LEE = Recipient(
    name='Lee Park', email='lee.park@example.com', phone='+15550000003',
    role='site-manager', department='Chemistry',
)


class FakeChannel:
    """Delivery channel recording every message."""

    def __init__(self, fail_email=False, fail_sms=False):
        self.fail_email = fail_email
        self.fail_sms = fail_sms
        self.emails = []
        self.sms = []
        self._lock = threading.Lock()

    def send_email(self, recipient, subject, body, html_body=None):
        with self._lock:
            self.emails.append((recipient.email, subject, body, html_body))
            count = len(self.emails)
        if self.fail_email:
            return DeliveryResult(success=False, channel='email', error='SMTP server unavailable')
        return DeliveryResult(success=True, channel='email', message_id=f'email-{count}')

    def send_sms(self, recipient, body):
        with self._lock:
            self.sms.append((recipient.phone, body))
            count = len(self.sms)
        if self.fail_sms:
            return DeliveryResult(success=False, channel='sms', error='Gateway rejected message')
        return DeliveryResult(success=True, channel='sms', message_id=f'sms-{count}')

    @property
    def subjects(self):
        return [subject for _email, subject, _body, _html in self.emails]


def build(templates=None, records=None, users=(DANA, SAM, LEE), channel=None, **config):
    """
    In-memory orchestrator.

    Returns:
        (orchestrator, store, channel, state)
    """
    store = InMemoryRecordStore(
        templates=templates if templates is not None else [make_template()],
        records={'incidents': records if records is not None else [make_record()]},
        users=users,
    )
    channel = channel or FakeChannel()
    state = InMemoryEscalationStateStore()
    orchestrator = EscalationOrchestrator(
        store=store,
        channel=channel,
        state=state,
        config=EngineConfig(**config),
    )
    return orchestrator, store, channel, state
