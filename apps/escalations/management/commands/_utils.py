"""Helpers shared by the escalation management commands."""

from django.core.management.base import CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime


def parse_at(value):
    """Parse an --at ISO timestamp; naive values use the current time zone."""
    if not value:
        return timezone.now()
    moment = parse_datetime(value)
    if moment is None:
        raise CommandError(f'Invalid --at timestamp: {value!r} (expected ISO 8601)')
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment
