"""
Trigger evaluation: has a hierarchy level's trigger fired for a record?

Time-based triggers read a date field on the record and serve two purposes
depending on which side of `now` that date falls:

- Reference date in the future: a proactive reminder. Fires once the time
  left until the date is at most `days_before` days.
- Reference date now or in the past: an overdue escalation. Fires once
  floor((now - date) / 1 day) >= `days_after`.

Event-based triggers are point-in-time predicates on a field value. They
fire every cycle the condition holds; duplicate suppression in the state
store keeps that from turning into repeated notifications.
"""

import logging
import math
from datetime import date, datetime, time, timedelta

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .definitions import TriggerType, resolve_field
from .exceptions import InvalidReferenceDateError

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Dates further away than this are still used but reported as suspicious.
PLAUSIBLE_RANGE = timedelta(days=3650)


def parse_reference_date(value):
    """
    Parse an ISO date or datetime (string, date or datetime).

    Raises:
        ValueError: If the value is empty, malformed or not a real date
            (e.g. "2025-02-30").
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f'Not a date: {value!r}')

    text = value.strip()
    parsed = parse_datetime(text)
    if parsed is None:
        parsed_date = parse_date(text)
        if parsed_date is None:
            raise ValueError(f'Not a date: {value!r}')
        parsed = datetime.combine(parsed_date, time.min)
    return parsed


def align_to(reference, now):
    """
    Make `reference` comparable with `now` (both naive or both aware).

    Naive record dates are wall-clock times in the configured TIME_ZONE,
    whatever zone `now` is expressed in.
    """
    if timezone.is_aware(now) and timezone.is_naive(reference):
        return timezone.make_aware(reference, timezone.get_current_timezone())
    if timezone.is_naive(now) and timezone.is_aware(reference):
        return timezone.make_naive(reference, timezone.get_current_timezone())
    return reference


def days_elapsed(reference, now):
    """Whole days from reference to now, floored (negative for future dates)."""
    return math.floor((now - reference) / ONE_DAY)


def time_trigger_fires(reference, now, days_before=0, days_after=0):
    if reference > now:
        return reference - now <= timedelta(days=days_before)
    return days_elapsed(reference, now) >= days_after


def _strict_equals(left, right):
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if left is None or right is None:
        return left is None and right is None
    return type(left) is type(right) and left == right


class TriggerEvaluator:
    """Decides whether a trigger has fired for a record at a point in time."""

    def fires(self, trigger, record, now):
        if trigger.kind == TriggerType.TIME:
            try:
                reference = self.reference_date(trigger, record, now)
            except InvalidReferenceDateError as e:
                logger.warning(f'Data quality: {e}; trigger for level {trigger.level} skipped')
                return False
            return time_trigger_fires(
                reference, now,
                days_before=trigger.days_before,
                days_after=trigger.days_after,
            )

        if trigger.kind == TriggerType.EVENT:
            return _strict_equals(resolve_field(record, trigger.field), trigger.value)

        return False

    def reference_date(self, trigger, record, now):
        """
        Return the trigger's reference date, aligned with `now`.

        Raises:
            InvalidReferenceDateError: If the field is missing or unparseable.
        """
        record_id = record.get('id')
        raw = resolve_field(record, trigger.reference_field)
        try:
            reference = align_to(parse_reference_date(raw), now)
        except (TypeError, ValueError, OverflowError):
            raise InvalidReferenceDateError(record_id, trigger.reference_field, raw)

        if abs(reference - now) > PLAUSIBLE_RANGE:
            logger.warning(
                f"Data quality: date in field '{trigger.reference_field}' of record "
                f'{record_id} is more than ten years from now: {raw!r}'
            )
        return reference

    def trigger_date(self, trigger, record, now):
        """
        The moment a time-based trigger starts firing for this record.

        Raises:
            InvalidReferenceDateError: If the reference date is unusable.
        """
        reference = self.reference_date(trigger, record, now)
        if reference > now:
            return reference - timedelta(days=trigger.days_before)
        return reference + timedelta(days=trigger.days_after)

    def fired_levels(self, template, record, now):
        """Levels with at least one firing trigger, ascending."""
        levels = []
        for level, triggers in template.triggers_by_level().items():
            if any(self.fires(trigger, record, now) for trigger in triggers):
                levels.append(level)
        return levels
