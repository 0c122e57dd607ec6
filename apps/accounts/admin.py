"""
Admin configuration for accounts app.

The user list doubles as the escalation directory: role, department and
phone decide who is notified at each hierarchy level.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html

from .models import User

ROLE_COLORS = {
    User.Role.EHS_ADMIN: '#7C3AED',
    User.Role.EXECUTIVE: '#DC2626',
    User.Role.GENERAL_MANAGER: '#EA580C',
    User.Role.SITE_MANAGER: '#D97706',
    User.Role.DEPARTMENT_HEAD: '#2563EB',
    User.Role.DIRECT_MANAGER: '#0891B2',
}


class SmsReachableFilter(admin.SimpleListFilter):
    """Users that can receive critical-level SMS escalations."""

    title = 'SMS reachable'
    parameter_name = 'sms'

    def lookups(self, request, model_admin):
        return (('yes', 'Has phone'), ('no', 'Email only'))

    def queryset(self, request, queryset):
        if self.value() == 'yes':
            return queryset.exclude(phone='')
        if self.value() == 'no':
            return queryset.filter(phone='')
        return queryset


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    User admin keyed by email, with escalation role and contact details.
    """

    list_display = ('email', 'get_full_name', 'role_badge', 'department', 'phone', 'is_active')
    list_filter = ('role', 'department', SmsReachableFilter, 'is_active', 'is_staff')
    search_fields = ('email', 'first_name', 'last_name', 'phone', 'role')
    ordering = ('email',)
    list_select_related = ('department',)

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Contact', {'fields': ('first_name', 'last_name', 'phone')}),
        ('Escalation', {'fields': ('role', 'department')}),
        ('Permissions', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',),
        }),
        ('History', {'fields': ('last_login', 'created_at', 'updated_at')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'password1', 'password2', 'first_name', 'last_name', 'role', 'department', 'phone'),
        }),
    )
    readonly_fields = ('created_at', 'updated_at', 'last_login')

    actions = ['stop_escalations', 'resume_escalations']

    def role_badge(self, obj):
        # Free-text roles fall back to grey
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 8px; '
            'border-radius: 4px; font-size: 11px;">{}</span>',
            ROLE_COLORS.get(obj.role, '#6B7280'), obj.get_role_display(),
        )
    role_badge.short_description = 'Role'
    role_badge.admin_order_field = 'role'

    def stop_escalations(self, request, queryset):
        """Deactivate users; recipient resolution skips inactive users."""
        count = queryset.update(is_active=False)
        self.message_user(request, f'{count} user(s) will no longer receive escalations.')
    stop_escalations.short_description = 'Deactivate (stop escalations)'

    def resume_escalations(self, request, queryset):
        count = queryset.update(is_active=True)
        self.message_user(request, f'{count} user(s) reactivated.')
    resume_escalations.short_description = 'Reactivate'
