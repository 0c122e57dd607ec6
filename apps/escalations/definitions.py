"""
Typed definitions used by the escalation engine.

Templates are stored as JSON on EscalationTemplate and converted into the
immutable dataclasses below before evaluation, so the engine never touches
ORM objects. Records are plain mappings of field name -> value.

Template JSON layout:
    {
        "id": "12", "name": "Critical Incident Escalation",
        "module": "incidents", "active": true, "version": 3,
        "applicability_rules": [
            {"field": "priority", "operator": "equals", "value": "Critical", "logic": "AND"}
        ],
        "hierarchy": [
            {"level": 1, "roles": ["direct-manager"], "fallback_email": "safety@x.com"}
        ],
        "triggers": [
            {"type": "time-based", "level": 1, "reference_field": "dueDate",
             "days_before": 2, "days_after": 0},
            {"type": "event-based", "level": 2, "field": "status", "value": "Overdue"}
        ],
        "notification_templates": {
            "email": {"subject": "Incident {{id}}", "body": "..."},
            "sms": "Incident {{id}} at {{location}}"
        }
    }
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from django.db import models


class Module(models.TextChoices):
    INCIDENTS = 'incidents', 'Incidents'
    WORK_PERMITS = 'work-permits', 'Work Permits'
    AUDITS = 'audits', 'Audits'


class Logic(models.TextChoices):
    AND = 'AND', 'And'
    OR = 'OR', 'Or'


class TriggerType(models.TextChoices):
    TIME = 'time-based', 'Time-based'
    EVENT = 'event-based', 'Event-based'


class Priority(models.TextChoices):
    NORMAL = 'normal', 'Normal'
    HIGH = 'high', 'High'
    CRITICAL = 'critical', 'Critical'


class LogStatus(models.TextChoices):
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'
    DUPLICATE = 'duplicate', 'Duplicate'
    CANCELLED = 'cancelled', 'Cancelled'


class Channel(models.TextChoices):
    EMAIL = 'email', 'Email'
    SMS = 'sms', 'SMS'


def resolve_field(record, path):
    """
    Look up a (possibly dotted) field path on a record.

    A literal key containing dots wins over nested traversal. Missing
    segments resolve to None.
    """
    if not path:
        return None
    if isinstance(record, Mapping) and path in record:
        return record[path]

    current = record
    for part in path.split('.'):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


# =============================================================================
# Template parts
# =============================================================================

@dataclass(frozen=True)
class Rule:
    field: str
    operator: str
    value: Any = None
    logic: str = Logic.AND

    @classmethod
    def from_dict(cls, data):
        return cls(
            field=data.get('field') or '',
            operator=data.get('operator') or '',
            value=data.get('value'),
            logic=data.get('logic') or Logic.AND,
        )

    def to_dict(self):
        return {
            'field': self.field,
            'operator': self.operator,
            'value': self.value,
            'logic': str(self.logic),
        }


@dataclass(frozen=True)
class HierarchyLevel:
    level: int
    roles: tuple = ()
    fallback_email: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            level=data.get('level'),
            roles=tuple(role for role in (data.get('roles') or ()) if role),
            fallback_email=data.get('fallback_email') or None,
        )

    def to_dict(self):
        return {
            'level': self.level,
            'roles': list(self.roles),
            'fallback_email': self.fallback_email,
        }


@dataclass(frozen=True)
class TimeTrigger:
    level: int
    reference_field: str
    days_before: int = 0
    days_after: int = 0

    kind = TriggerType.TIME

    def to_dict(self):
        return {
            'type': str(self.kind),
            'level': self.level,
            'reference_field': self.reference_field,
            'days_before': self.days_before,
            'days_after': self.days_after,
        }


@dataclass(frozen=True)
class EventTrigger:
    level: int
    field: str
    value: Any = None

    kind = TriggerType.EVENT

    def to_dict(self):
        return {
            'type': str(self.kind),
            'level': self.level,
            'field': self.field,
            'value': self.value,
        }


@dataclass(frozen=True)
class InvalidTrigger:
    """Placeholder for a stored trigger whose configuration cannot be evaluated."""

    level: Any
    error: str
    raw: tuple = ()

    kind = 'invalid'

    def to_dict(self):
        return dict(self.raw)


Trigger = Union[TimeTrigger, EventTrigger, InvalidTrigger]


def _as_offset(value):
    if value in (None, ''):
        return 0
    return int(value)


def parse_trigger(data):
    """Build a typed trigger from its JSON form. Never raises."""
    trigger_type = data.get('type')
    level = data.get('level')
    try:
        if trigger_type == TriggerType.TIME:
            return TimeTrigger(
                level=level,
                reference_field=data.get('reference_field') or '',
                days_before=_as_offset(data.get('days_before')),
                days_after=_as_offset(data.get('days_after')),
            )
        if trigger_type == TriggerType.EVENT:
            return EventTrigger(
                level=level,
                field=data.get('field') or '',
                value=data.get('value'),
            )
    except (TypeError, ValueError) as e:
        return InvalidTrigger(level=level, error=f'Invalid trigger offsets: {e}', raw=tuple(data.items()))
    return InvalidTrigger(
        level=level,
        error=f'Unknown trigger type: {trigger_type!r}',
        raw=tuple(data.items()),
    )


@dataclass(frozen=True)
class NotificationTemplates:
    email_subject: str = ''
    email_body: str = ''
    sms: str = ''

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        email = data.get('email') or {}
        return cls(
            email_subject=email.get('subject') or '',
            email_body=email.get('body') or '',
            sms=data.get('sms') or '',
        )

    def to_dict(self):
        return {
            'email': {'subject': self.email_subject, 'body': self.email_body},
            'sms': self.sms,
        }


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    module: str
    active: bool = True
    applicability_rules: tuple = ()
    hierarchy: tuple = ()
    triggers: tuple = ()
    notification_templates: NotificationTemplates = field(default_factory=NotificationTemplates)
    version: int = 1
    description: str = ''

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data.get('id') or ''),
            name=data.get('name') or '',
            module=data.get('module') or '',
            active=bool(data.get('active', True)),
            applicability_rules=tuple(
                Rule.from_dict(rule) for rule in (data.get('applicability_rules') or ())
            ),
            hierarchy=tuple(
                HierarchyLevel.from_dict(level) for level in (data.get('hierarchy') or ())
            ),
            triggers=tuple(
                parse_trigger(trigger) for trigger in (data.get('triggers') or ())
            ),
            notification_templates=NotificationTemplates.from_dict(
                data.get('notification_templates')
            ),
            version=data.get('version') or 1,
            description=data.get('description') or '',
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'module': self.module,
            'active': self.active,
            'description': self.description,
            'version': self.version,
            'applicability_rules': [rule.to_dict() for rule in self.applicability_rules],
            'hierarchy': [level.to_dict() for level in self.hierarchy],
            'triggers': [trigger.to_dict() for trigger in self.triggers],
            'notification_templates': self.notification_templates.to_dict(),
        }

    def get_level(self, number):
        """Return the HierarchyLevel with the given number, or None."""
        for level in self.hierarchy:
            if level.level == number:
                return level
        return None

    def triggers_by_level(self):
        """Group triggers by level, levels ascending."""
        grouped = {}
        for trigger in self.triggers:
            grouped.setdefault(trigger.level, []).append(trigger)
        return dict(sorted(
            grouped.items(),
            key=lambda item: item[0] if isinstance(item[0], int) else float('inf'),
        ))


# =============================================================================
# Runtime values
# =============================================================================

@dataclass(frozen=True)
class Recipient:
    name: str = ''
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    is_fallback: bool = False

    @property
    def identity(self):
        """Key used for de-duplication and duplicate suppression."""
        if self.email:
            return self.email.strip().lower()
        if self.phone:
            return self.phone.strip()
        return self.name

    def __str__(self):
        return self.email or self.phone or self.name


@dataclass(frozen=True)
class NotificationContent:
    level: int
    subject: str
    body: str
    html_body: str
    sms_body: str
    action_url: str
    priority: str
    prefix: str


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    channel: str
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class NotificationLogEntry:
    template_id: str
    record_id: str
    level: Optional[int]
    recipient: str
    status: str
    timestamp: datetime
    error: Optional[str] = None
    channel: str = ''
    template_name: str = ''
    module: str = ''


@dataclass(frozen=True)
class SimulationResult:
    level: Any
    kind: str
    status: str
    description: str = ''
    applicable: bool = True
    trigger_date: Optional[datetime] = None
    error: Optional[str] = None
    subject: Optional[str] = None
    sms_body: Optional[str] = None
