"""
Service layer for accounts app.

Directory queries used by escalation recipient resolution:
- users_by_role: active users holding a role, optionally scoped to a department
- as_recipient: convert a User into the engine's Recipient value
"""

from django.contrib.auth import get_user_model

from apps.departments.models import Department
from apps.escalations.definitions import Recipient


def as_recipient(user):
    """
    Build the Recipient the escalation engine delivers to.

    Args:
        user: User instance

    Returns:
        Recipient
    """
    return Recipient(
        name=user.get_full_name(),
        email=user.email or None,
        phone=user.phone or None,
        role=user.role,
        department=user.department.name if user.department_id else None,
    )


def get_users_with_role(role, department=None):
    """
    Queryset of active users holding `role` (case-insensitive).

    Args:
        role: Role text from a hierarchy level
        department: Department name or code from the record (optional).
            When given, only users in that department are returned.

    Returns:
        QuerySet of User
    """
    User = get_user_model()

    users = User.objects.filter(is_active=True, role__iexact=(role or '').strip())
    if department:
        users = users.filter(department__in=Department.objects.matching(department))
    return users.select_related('department').order_by('email')


def users_by_role(role, department=None):
    """
    Recipients for a role, scoped to the record's department when present.

    Returns:
        list of Recipient
    """
    return [as_recipient(user) for user in get_users_with_role(role, department)]
