"""
Engine configuration.

Values come from settings.ESCALATION_ENGINE (see config/settings/base.py);
missing keys fall back to the defaults below.
"""

from dataclasses import dataclass, field
from datetime import timedelta

from django.conf import settings


DEFAULT_COMPLETION_STATUSES = {
    'incidents': ('Closed', 'Resolved'),
    'work-permits': ('Closed', 'Completed', 'Approved'),
    'audits': ('Closed', 'Completed'),
}


@dataclass(frozen=True)
class EngineConfig:
    suppression_window: timedelta = timedelta(hours=24)
    instance_retention: timedelta = timedelta(days=7)
    claim_timeout: timedelta = timedelta(minutes=10)
    max_workers: int = 1
    reopen_starts_new_episode: bool = False
    sms_max_length: int = 160
    sms_priorities: tuple = ('critical',)
    completion_statuses: dict = field(default_factory=lambda: dict(DEFAULT_COMPLETION_STATUSES))
    base_url: str = 'http://localhost:8000'

    @classmethod
    def from_settings(cls, **overrides):
        engine = getattr(settings, 'ESCALATION_ENGINE', {})
        completion = engine.get('COMPLETION_STATUSES', DEFAULT_COMPLETION_STATUSES)
        values = {
            'suppression_window': timedelta(hours=engine.get('SUPPRESSION_WINDOW_HOURS', 24)),
            'instance_retention': timedelta(days=engine.get('INSTANCE_RETENTION_DAYS', 7)),
            'claim_timeout': timedelta(minutes=engine.get('CLAIM_TIMEOUT_MINUTES', 10)),
            'max_workers': engine.get('MAX_WORKERS', 1),
            'reopen_starts_new_episode': engine.get('REOPEN_STARTS_NEW_EPISODE', False),
            'sms_max_length': engine.get('SMS_MAX_LENGTH', 160),
            'sms_priorities': tuple(engine.get('SMS_PRIORITIES', ('critical',))),
            'completion_statuses': {
                module: tuple(statuses) for module, statuses in completion.items()
            },
            'base_url': getattr(settings, 'SITE_URL', 'http://localhost:8000'),
        }
        values.update(overrides)
        return cls(**values)

    def is_completed(self, module, status):
        """Check whether a record status ends escalation for its module."""
        if status is None:
            return False
        completed = {str(s).lower() for s in self.completion_statuses.get(module, ())}
        return str(status).strip().lower() in completed
