"""
Safety records evaluated by the escalation engine.

Incidents, work permits and audits share one table. The columns below are
the fields every module has; anything module-specific (dueDate, expiryDate,
severity, auditor, ...) lives in `data` and is exposed to templates under
its stored name.
"""

from django.db import models

from apps.escalations.definitions import Module


class SafetyRecord(models.Model):
    """
    An incident, work permit or audit.

    `reference` is the record id seen by templates ({{id}}), state keys and
    the record deep link.
    """

    module = models.CharField(
        max_length=20,
        choices=Module.choices,
        db_index=True,
    )
    reference = models.CharField(
        max_length=50,
        unique=True,
        help_text='Record id, e.g. INC-2025-001',
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(
        max_length=30,
        default='Open',
        db_index=True,
        help_text='Module status, e.g. Open, In Progress, Closed',
    )
    priority = models.CharField(
        max_length=20,
        blank=True,
        help_text='Priority or severity, e.g. Critical, High, Medium',
    )
    department = models.CharField(
        max_length=100,
        blank=True,
        help_text='Department name or code used to scope escalation recipients',
    )
    location = models.CharField(max_length=200, blank=True)
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text='Module-specific fields (dates in ISO 8601)',
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'safety record'
        verbose_name_plural = 'safety records'
        ordering = ['module', 'reference']

    def __str__(self):
        return f"{self.reference} - {self.title}"

    def as_record(self):
        """
        Flat mapping handed to the escalation engine.

        Column values win over keys of the same name in `data`.
        """
        record = dict(self.data or {})
        record.update({
            'id': self.reference,
            'module': self.module,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'department': self.department,
            'location': self.location,
        })
        if self.created_at and 'createdDate' not in record:
            record['createdDate'] = self.created_at.isoformat()
        return record
