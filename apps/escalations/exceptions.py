"""
Exceptions raised by the escalation engine.

Template validation errors use django.core.exceptions.ValidationError
(with the full list of messages) like the rest of the service layer.
"""


class EscalationError(Exception):
    """Base class for escalation engine errors."""


class InvalidReferenceDateError(EscalationError, ValueError):
    """A time-based trigger points at a missing or unparseable date."""

    def __init__(self, record_id, field, value):
        self.record_id = record_id
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid reference date in field '{field}' of record {record_id}: {value!r}"
        )


class MissingHierarchyError(EscalationError):
    """No recipients could be resolved for a hierarchy level and no fallback exists."""

    def __init__(self, level, roles=(), department=None):
        self.level = level
        self.roles = list(roles)
        self.department = department
        roles_display = ', '.join(self.roles) or 'none'
        scope = f" in department '{department}'" if department else ''
        super().__init__(
            f'No recipients for level {level} (roles: {roles_display}){scope} '
            f'and no fallback email configured'
        )


class DeliveryError(EscalationError):
    """A delivery channel failed to hand over a notification."""
