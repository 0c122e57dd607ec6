"""
Department model for organizational structure.

Departments are flat (no hierarchy/nesting). Safety records carry the
department name or code as text; escalation recipients are scoped to it.
"""

from django.db import models
from django.db.models import Q


class DepartmentQuerySet(models.QuerySet):

    def matching(self, label):
        """Departments whose name or code equals `label` (case-insensitive)."""
        label = (label or '').strip()
        return self.filter(Q(name__iexact=label) | Q(code__iexact=label))


class Department(models.Model):
    """
    An organizational unit used to scope escalation recipients.

    Records refer to a department by name or code; see
    DepartmentQuerySet.matching().
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text='Full department name'
    )
    code = models.CharField(
        max_length=10,
        unique=True,
        help_text='Short identifier (e.g., OPS, MAINT, HSE)'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DepartmentQuerySet.as_manager()

    class Meta:
        verbose_name = 'department'
        verbose_name_plural = 'departments'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"

    def save(self, *args, **kwargs):
        if self.code:
            self.code = self.code.upper()
        super().save(*args, **kwargs)

    @property
    def employee_count(self):
        """Active users in the department."""
        return self.users.filter(is_active=True).count()
