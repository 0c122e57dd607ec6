"""
Custom User model for the EHS escalation service.

Users are the escalation directory: hierarchy levels name roles, and the
users holding a role (within the record's department) receive the
notification for that level.

CRITICAL: AUTH_USER_MODEL must point here before running any migrations.
Changing the User model after migrations is very complex.
"""

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class UserManager(BaseUserManager):
    """Manager for email-keyed users; superusers default to the EHS admin role."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Users need an email address to receive escalations')

        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', User.Role.EHS_ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Custom User model with email authentication and an escalation role.

    Roles are free text so templates can introduce new ones; the common
    roles of the EHS escalation chain are listed in User.Role:
    - Direct Manager: first level, scoped to the record's department
    - Department Head: second level
    - Site Manager / General Manager: third level and above
    - Executive: maximum escalation
    """

    class Role(models.TextChoices):
        EHS_ADMIN = 'ehs-admin', 'EHS Admin'
        DIRECT_MANAGER = 'direct-manager', 'Direct Manager'
        DEPARTMENT_HEAD = 'department-head', 'Department Head'
        SITE_MANAGER = 'site-manager', 'Site Manager'
        GENERAL_MANAGER = 'general-manager', 'General Manager'
        EXECUTIVE = 'executive', 'Executive'
        EMPLOYEE = 'employee', 'Employee'

    # Email is the login and the escalation address
    username = None
    email = models.EmailField(
        'email address',
        unique=True,
        error_messages={
            'unique': 'A user with that email already exists.',
        },
    )

    # Role and department
    role = models.CharField(
        max_length=50,
        default=Role.EMPLOYEE,
        db_index=True,
        help_text='Escalation role, e.g. direct-manager or department-head',
    )
    department = models.ForeignKey(
        'departments.Department',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='users',
    )
    phone = models.CharField(
        max_length=20,
        blank=True,
        help_text='Mobile number for critical SMS escalations (E.164, e.g. +15551234567)',
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        verbose_name = 'user'
        verbose_name_plural = 'users'
        ordering = ['first_name', 'last_name']

    def __str__(self):
        return f"{self.get_full_name()} ({self.email})"

    def get_full_name(self):
        """Display name used in notifications; falls back to the email."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_role_display(self):
        """Return the label of a known role, or the raw role text."""
        try:
            return self.Role(self.role).label
        except ValueError:
            return self.role
