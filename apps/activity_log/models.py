"""
Notification log for escalation audit trails.

One row per escalation outcome:
- sent / failed: one row per delivery channel attempt
- duplicate: suppressed inside the duplicate window
- cancelled: the record completed and its escalation episode was closed
- failed with no channel: routing failure (no recipients, no fallback)

Rows are append-only; nothing in the application updates or deletes them.
"""

from django.db import models


class NotificationLog(models.Model):
    """
    Audit log for escalation notifications.

    Access: Admin only (read-only)
    """

    class Status(models.TextChoices):
        SENT = 'sent', 'Sent'
        FAILED = 'failed', 'Failed'
        DUPLICATE = 'duplicate', 'Duplicate'
        CANCELLED = 'cancelled', 'Cancelled'

    template_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text='Escalation template id',
    )
    template_name = models.CharField(max_length=100, blank=True)
    record_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text='Safety record id',
    )
    module = models.CharField(max_length=20, blank=True)
    level = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text='Escalation level (empty for cancellations)',
    )
    recipient = models.CharField(
        max_length=254,
        blank=True,
        help_text='Email address or phone number notified',
    )
    channel = models.CharField(max_length=10, blank=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        db_index=True,
    )
    error = models.TextField(
        null=True,
        blank=True,
        help_text='Failure or cancellation reason',
    )
    timestamp = models.DateTimeField(
        db_index=True,
        help_text='Cycle evaluation time',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'notification log entry'
        verbose_name_plural = 'notification log'
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['template_id', 'record_id', 'level'], name='notiflog_pair_level_idx'),
            models.Index(fields=['status', '-timestamp'], name='notiflog_status_ts_idx'),
        ]

    def __str__(self):
        level = f'L{self.level}' if self.level is not None else '-'
        return f"{self.template_id}/{self.record_id} {level} {self.get_status_display()} {self.recipient}"


def log_notification(entry):
    """
    Helper function to persist an escalation log entry.

    Args:
        entry: NotificationLogEntry from the escalation engine

    Returns:
        Created NotificationLog instance
    """
    return NotificationLog.objects.create(
        template_id=entry.template_id,
        template_name=entry.template_name or '',
        record_id=entry.record_id,
        module=entry.module or '',
        level=entry.level,
        recipient=entry.recipient or '',
        channel=entry.channel or '',
        status=entry.status,
        error=entry.error,
        timestamp=entry.timestamp,
    )
