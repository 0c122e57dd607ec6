"""
Admin configuration for records app.
"""

from django.contrib import admin

from .models import SafetyRecord
from .services import change_status


@admin.register(SafetyRecord)
class SafetyRecordAdmin(admin.ModelAdmin):
    """Admin for SafetyRecord model."""

    list_display = ('reference', 'title', 'module', 'status', 'priority', 'department', 'updated_at')
    list_filter = ('module', 'status', 'priority')
    search_fields = ('reference', 'title', 'department', 'location')
    ordering = ('module', 'reference')

    readonly_fields = ('created_at', 'updated_at')

    fieldsets = (
        (None, {
            'fields': ('module', 'reference', 'title', 'description')
        }),
        ('Status', {
            'fields': ('status', 'priority', 'department', 'location')
        }),
        ('Module data', {
            'fields': ('data',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['mark_closed']

    def save_model(self, request, obj, form, change):
        """Route status edits through change_status so completion cancels escalations."""
        if change and 'status' in form.changed_data:
            new_status = obj.status
            obj.status = form.initial.get('status', obj.status)
            super().save_model(request, obj, form, change)
            change_status(obj, new_status)
            return
        super().save_model(request, obj, form, change)

    def mark_closed(self, request, queryset):
        """Close selected records and cancel their escalations."""
        cancelled = 0
        for record in queryset:
            cancelled += len(change_status(record, 'Closed'))
        self.message_user(request, f'{queryset.count()} record(s) closed, {cancelled} escalation(s) cancelled.')
    mark_closed.short_description = 'Close selected records'
