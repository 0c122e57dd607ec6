"""
Recipient resolution for escalation hierarchy levels.

Each level names roles. Users holding those roles (scoped to the record's
department when it has one) become recipients. When nobody matches and the
level has a fallback email, a single synthetic recipient is used instead
and a MissingHierarchy warning is reported. Warnings are returned to the
caller as data; deciding how to surface them is up to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .definitions import Recipient
from .exceptions import MissingHierarchyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyWarning:
    level: int
    roles: tuple
    department: Optional[str] = None
    fallback_email: Optional[str] = None

    code = 'MissingHierarchy'

    @property
    def message(self):
        roles = ', '.join(self.roles) or 'none'
        scope = f" in department '{self.department}'" if self.department else ''
        if self.fallback_email:
            return (
                f'{self.code}: no users with role(s) {roles}{scope} for level '
                f'{self.level}; using fallback {self.fallback_email}'
            )
        return f'{self.code}: no users with role(s) {roles}{scope} for level {self.level}'

    def __str__(self):
        return self.message


@dataclass(frozen=True)
class Resolution:
    level: int
    recipients: tuple = ()
    warnings: tuple = ()
    roles: tuple = ()
    department: Optional[str] = None

    @property
    def routed(self):
        return bool(self.recipients)

    def error(self):
        """The routing failure for an unrouted level."""
        return MissingHierarchyError(self.level, self.roles, self.department)


class HierarchyResolver:
    """
    Maps a HierarchyLevel to concrete recipients.

    Args:
        directory: Object exposing users_by_role(role, department=None)
            returning Recipient instances (the record store).
    """

    def __init__(self, directory):
        self.directory = directory

    def resolve(self, level, record):
        department = record.get('department') or None
        recipients = []
        seen = set()

        for role in level.roles:
            for user in self.directory.users_by_role(role, department):
                if user.identity in seen:
                    continue
                seen.add(user.identity)
                recipients.append(user)

        warnings = []
        if not recipients and level.fallback_email:
            warning = HierarchyWarning(
                level=level.level,
                roles=tuple(level.roles),
                department=department,
                fallback_email=level.fallback_email,
            )
            logger.warning(f"{warning.message} (record {record.get('id')})")
            warnings.append(warning)
            recipients.append(Recipient(
                name='Fallback Recipient',
                email=level.fallback_email,
                department=department,
                is_fallback=True,
            ))

        return Resolution(
            level=level.level,
            recipients=tuple(recipients),
            warnings=tuple(warnings),
            roles=tuple(level.roles),
            department=department,
        )


def find_hierarchy_gaps(template, directory, department=None):
    """
    List hierarchy levels whose roles currently match nobody.

    Used when a template is saved so the author can review gaps
    before the template goes live.

    Returns:
        list of HierarchyWarning, one per level with no matching users
    """
    gaps = []
    for level in template.hierarchy:
        if not level.roles:
            continue
        if any(directory.users_by_role(role, department) for role in level.roles):
            continue
        gaps.append(HierarchyWarning(
            level=level.level,
            roles=tuple(level.roles),
            department=department,
            fallback_email=level.fallback_email,
        ))
    return gaps
