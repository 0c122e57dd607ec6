"""
Admin configuration for activity_log app.
"""

from django.contrib import admin
from .models import NotificationLog


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    """Admin for NotificationLog model."""

    list_display = (
        'timestamp', 'template_name', 'record_id', 'level',
        'recipient', 'channel', 'status', 'error_preview'
    )
    list_filter = ('status', 'channel', 'module', 'level')
    search_fields = ('template_id', 'template_name', 'record_id', 'recipient', 'error')
    ordering = ('-timestamp',)
    date_hierarchy = 'timestamp'

    readonly_fields = (
        'template_id', 'template_name', 'record_id', 'module', 'level',
        'recipient', 'channel', 'status', 'error', 'timestamp', 'created_at'
    )

    def error_preview(self, obj):
        """Show truncated error."""
        if not obj.error:
            return ''
        return obj.error[:80] + '...' if len(obj.error) > 80 else obj.error
    error_preview.short_description = 'Error'

    def has_add_permission(self, request):
        """Prevent manual creation of log entries."""
        return False

    def has_change_permission(self, request, obj=None):
        """Prevent editing of log entries."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Prevent deletion of log entries."""
        return False
