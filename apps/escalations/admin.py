"""
Admin configuration for escalations app.

Templates are saved through services.save_template() so the admin gets the
same validation and version bump as every other entry point.
"""

from django import forms
from django.contrib import admin, messages
from django.core.exceptions import ValidationError

from .conf import EngineConfig
from .models import EscalationEpisode, EscalationInstance, EscalationTemplate
from .services import (
    TEMPLATE_FIELDS, clone_template, hierarchy_gaps, save_template, send_test_notification,
)
from .validators import validate_template


class EscalationTemplateAdminForm(forms.ModelForm):

    class Meta:
        model = EscalationTemplate
        fields = TEMPLATE_FIELDS

    def clean(self):
        cleaned_data = super().clean()
        errors = validate_template(
            {name: cleaned_data.get(name) for name in TEMPLATE_FIELDS},
            sms_max_length=EngineConfig.from_settings().sms_max_length,
        )
        if errors:
            raise ValidationError(errors)
        return cleaned_data


@admin.register(EscalationTemplate)
class EscalationTemplateAdmin(admin.ModelAdmin):
    """Admin for EscalationTemplate model."""

    form = EscalationTemplateAdminForm
    list_display = ('name', 'module', 'active', 'level_count', 'version', 'updated_at')
    list_filter = ('module', 'active')
    search_fields = ('name', 'description')
    ordering = ('module', 'name')

    readonly_fields = ('version', 'created_at', 'updated_at')

    fieldsets = (
        (None, {
            'fields': ('name', 'module', 'description', 'active', 'version')
        }),
        ('Rules', {
            'fields': ('applicability_rules',),
        }),
        ('Escalation', {
            'fields': ('hierarchy', 'triggers'),
        }),
        ('Notifications', {
            'fields': ('notification_templates',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    actions = ['clone_templates', 'activate_templates', 'deactivate_templates', 'send_test_to_me']

    def level_count(self, obj):
        """Number of hierarchy levels."""
        return len(obj.hierarchy or [])
    level_count.short_description = 'Levels'

    def save_model(self, request, obj, form, change):
        data = {name: form.cleaned_data.get(name) for name in TEMPLATE_FIELDS}
        saved = save_template(data, instance=obj if change else None)
        obj.pk = saved.pk
        obj.version = saved.version
        for gap in hierarchy_gaps(saved):
            messages.warning(request, gap.message)

    def clone_templates(self, request, queryset):
        """Copy selected templates as inactive drafts."""
        for template in queryset:
            clone_template(template)
        self.message_user(request, f'{queryset.count()} template(s) cloned.')
    clone_templates.short_description = 'Clone selected templates'

    def activate_templates(self, request, queryset):
        """Activate selected templates."""
        count = queryset.update(active=True)
        self.message_user(request, f'{count} template(s) activated.')
    activate_templates.short_description = 'Activate selected templates'

    def deactivate_templates(self, request, queryset):
        """Deactivate selected templates."""
        count = queryset.update(active=False)
        self.message_user(request, f'{count} template(s) deactivated.')
    deactivate_templates.short_description = 'Deactivate selected templates'

    def send_test_to_me(self, request, queryset):
        """Send each selected template (level 1, sample record) to the current user."""
        if not request.user.email:
            self.message_user(request, 'Your account has no email address.', messages.ERROR)
            return
        for template in queryset:
            result = send_test_notification(template, request.user.email)
            if result.success:
                self.message_user(request, f"Test notification for {template.name} sent to {request.user.email}.")
            else:
                self.message_user(request, f"Test notification for {template.name} failed: {result.error}", messages.ERROR)
    send_test_to_me.short_description = 'Send test notification to me'


class EscalationInstanceInline(admin.TabularInline):
    model = EscalationInstance
    extra = 0
    can_delete = False
    fields = ('generation', 'level', 'recipient_key', 'last_sent_at', 'claimed_at', 'cancelled')
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(EscalationEpisode)
class EscalationEpisodeAdmin(admin.ModelAdmin):
    """Read-only view of escalation state."""

    list_display = ('template_id', 'record_id', 'generation', 'cancelled', 'cancelled_at', 'updated_at')
    list_filter = ('cancelled',)
    search_fields = ('template_id', 'record_id')
    readonly_fields = (
        'template_id', 'record_id', 'generation', 'cancelled',
        'cancelled_at', 'created_at', 'updated_at'
    )
    inlines = [EscalationInstanceInline]

    def has_add_permission(self, request):
        """Episodes are created by the engine only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False
