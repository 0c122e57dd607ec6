"""
Service layer for records app.

Services:
- change_status: Update a record's status; completing it cancels its escalations
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from apps.escalations.conf import EngineConfig
from apps.escalations.services import cancel_record_escalations

logger = logging.getLogger(__name__)


def change_status(record, new_status, orchestrator=None):
    """
    Change a safety record's status.

    When the new status is a completion status of the record's module,
    every open escalation of the record is cancelled straight away instead
    of waiting for the next cycle.

    Args:
        record: SafetyRecord instance
        new_status: New status text (e.g. "Closed")

    Returns:
        list of template ids whose escalation was cancelled

    Raises:
        ValidationError: If the status is empty
    """
    if not new_status or not new_status.strip():
        raise ValidationError('Status is required.')

    old_status = record.status
    new_status = new_status.strip()
    if new_status == old_status:
        return []

    with transaction.atomic():
        record.status = new_status
        record.save(update_fields=['status', 'updated_at'])

    logger.info(f'Record {record.reference} status changed: {old_status} -> {new_status}')

    if not EngineConfig.from_settings().is_completed(record.module, new_status):
        return []
    return cancel_record_escalations(record, orchestrator=orchestrator)
