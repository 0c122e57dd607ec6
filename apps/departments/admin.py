"""
Admin configuration for departments app.

Shows which escalation roles each department can actually route to.
"""

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.utils.html import format_html_join

from .models import Department

# Roles checked for coverage, in escalation order
ESCALATION_ROLES = ('direct-manager', 'department-head', 'site-manager', 'general-manager')


class DirectoryInline(admin.TabularInline):
    """Users of the department as seen by recipient resolution."""

    model = get_user_model()
    fk_name = 'department'
    fields = ('email', 'first_name', 'last_name', 'role', 'phone', 'is_active')
    readonly_fields = fields
    extra = 0
    can_delete = False
    show_change_link = True
    verbose_name = 'directory entry'
    verbose_name_plural = 'escalation directory'

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    """Admin for Department model."""

    list_display = ('name', 'code', 'employee_count', 'role_coverage')
    search_fields = ('name', 'code')
    readonly_fields = ('created_at', 'updated_at')
    inlines = [DirectoryInline]

    def role_coverage(self, obj):
        """Escalation roles held by at least one active user."""
        held = {
            role.lower()
            for role in obj.users.filter(is_active=True).values_list('role', flat=True)
        }
        return format_html_join(
            ' ',
            '<span style="color: {};">{}</span>',
            (('#059669' if role in held else '#DC2626', role) for role in ESCALATION_ROLES),
        )
    role_coverage.short_description = 'Role coverage'
