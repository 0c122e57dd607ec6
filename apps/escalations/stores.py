"""
Record and state stores.

DjangoRecordStore       templates, records, recipients and the log over the ORM
DatabaseEscalationStateStore
                        EscalationStateStore over EscalationEpisode rows,
                        locked with select_for_update() inside atomic blocks
InMemoryRecordStore     plain in-process store (tests, previews)
"""

import logging
import threading

from django.db import transaction

from apps.accounts.services import users_by_role
from apps.activity_log.models import log_notification
from apps.records.models import SafetyRecord

from .models import EscalationEpisode, EscalationInstance, EscalationTemplate
from .state import Claim, ClaimStatus, EscalationStateStore, InstanceState, decide_claim

logger = logging.getLogger(__name__)


# =============================================================================
# Record stores
# =============================================================================

class DjangoRecordStore:
    """Record store reading templates, safety records and users from the database."""

    def templates_for(self, module):
        templates = EscalationTemplate.objects.filter(module=module, active=True)
        return [template.to_definition() for template in templates]

    def records_for(self, module):
        records = SafetyRecord.objects.filter(module=module).order_by('reference')
        return [record.as_record() for record in records]

    def users_by_role(self, role, department=None):
        return users_by_role(role, department)

    def append(self, entry):
        log_notification(entry)

    def save(self, template):
        """
        Persist a Template definition (validated, version bumped).

        Returns:
            Template as saved
        """
        from .services import save_template

        data = template.to_dict()
        instance = None
        if template.id:
            instance = EscalationTemplate.objects.filter(pk=template.id).first()
        return save_template(data, instance=instance).to_definition()


class InMemoryRecordStore:
    """
    Record store holding everything in memory.

    Args:
        templates: Template instances
        records: dict of module -> list of record mappings
        users: Recipient instances (role and department set)
        departments: dict of department code -> name, so records may name
            a department by either
    """

    def __init__(self, templates=(), records=None, users=(), departments=None):
        self._lock = threading.Lock()
        self.templates = list(templates)
        self.records = {module: list(items) for module, items in (records or {}).items()}
        self.users = list(users)
        self.departments = {
            code.strip().lower(): name.strip().lower()
            for code, name in (departments or {}).items()
        }
        self.log = []

    def templates_for(self, module):
        return [template for template in self.templates if template.module == module]

    def records_for(self, module):
        return list(self.records.get(module, ()))

    def users_by_role(self, role, department=None):
        role = (role or '').strip().lower()
        department = self._department_name(department)
        return [
            user for user in self.users
            if (user.role or '').lower() == role
            and (not department or self._department_name(user.department) == department)
        ]

    def _department_name(self, label):
        label = (label or '').strip().lower()
        return self.departments.get(label, label)

    def append(self, entry):
        with self._lock:
            self.log.append(entry)

    def save(self, template):
        from django.core.exceptions import ValidationError

        from .validators import validate_template

        errors = validate_template(template.to_dict())
        if errors:
            raise ValidationError(errors)
        with self._lock:
            self.templates = [t for t in self.templates if t.id != template.id]
            self.templates.append(template)
        return template

    def entries(self, status=None):
        """Log entries, optionally filtered by status."""
        with self._lock:
            return [entry for entry in self.log if status is None or entry.status == status]


# =============================================================================
# Database state store
# =============================================================================

class DatabaseEscalationStateStore(EscalationStateStore):
    """
    EscalationStateStore persisted in EscalationEpisode/EscalationInstance.

    The episode row is the per-pair lock: every check-then-act runs in
    transaction.atomic() after select_for_update() on it.
    """

    def _locked_episode(self, template_id, record_id, create=True):
        episodes = EscalationEpisode.objects.select_for_update()
        if create:
            episode, _ = episodes.get_or_create(template_id=template_id, record_id=record_id)
            return episode
        return episodes.filter(template_id=template_id, record_id=record_id).first()

    def claim(self, key, now, window, claim_timeout):
        with transaction.atomic():
            episode = self._locked_episode(key.template_id, key.record_id)
            instance = episode.instances.filter(
                generation=episode.generation,
                level=key.level,
                recipient_key=key.recipient_key,
            ).first()
            status = decide_claim(
                episode.cancelled,
                instance.last_sent_at if instance else None,
                instance.claimed_at if instance else None,
                now, window, claim_timeout,
            )
            if status == ClaimStatus.CLAIMED:
                if instance is None:
                    EscalationInstance.objects.create(
                        episode=episode,
                        generation=episode.generation,
                        level=key.level,
                        recipient_key=key.recipient_key,
                        claimed_at=now,
                    )
                else:
                    instance.claimed_at = now
                    instance.save(update_fields=['claimed_at'])
            return Claim(status=status, generation=episode.generation)

    def release(self, key, claim, now, delivered):
        with transaction.atomic():
            episode = self._locked_episode(key.template_id, key.record_id, create=False)
            if episode is None:
                return
            updates = {'claimed_at': None}
            if delivered:
                updates['last_sent_at'] = now
            episode.instances.filter(
                generation=claim.generation,
                level=key.level,
                recipient_key=key.recipient_key,
            ).update(**updates)

    def cancel(self, template_id, record_id, now):
        with transaction.atomic():
            episode, created = EscalationEpisode.objects.select_for_update().get_or_create(
                template_id=template_id,
                record_id=record_id,
                defaults={'cancelled': True, 'cancelled_at': now},
            )
            if created or episode.cancelled:
                return False
            episode.cancelled = True
            episode.cancelled_at = now
            episode.save(update_fields=['cancelled', 'cancelled_at', 'updated_at'])
            episode.instances.filter(generation=episode.generation).update(cancelled=True)
            return True

    def cancel_record(self, record_id, now):
        template_ids = list(
            EscalationEpisode.objects
            .filter(record_id=record_id, cancelled=False)
            .values_list('template_id', flat=True)
        )
        return [
            template_id for template_id in template_ids
            if self.cancel(template_id, record_id, now)
        ]

    def is_cancelled(self, template_id, record_id):
        return EscalationEpisode.objects.filter(
            template_id=template_id, record_id=record_id, cancelled=True,
        ).exists()

    def start_new_episode(self, template_id, record_id):
        with transaction.atomic():
            episode = self._locked_episode(template_id, record_id)
            if episode.cancelled:
                episode.generation += 1
                episode.cancelled = False
                episode.cancelled_at = None
                episode.save(update_fields=['generation', 'cancelled', 'cancelled_at', 'updated_at'])
            return episode.generation

    def evict(self, cutoff):
        deleted, _ = EscalationInstance.objects.filter(
            cancelled=False,
            claimed_at__isnull=True,
            last_sent_at__lt=cutoff,
        ).delete()
        if deleted:
            logger.info(f'Evicted {deleted} expired escalation instance(s)')
        return deleted

    def snapshot(self, template_id, record_id):
        instances = (
            EscalationInstance.objects
            .filter(episode__template_id=template_id, episode__record_id=record_id)
            .order_by('generation', 'level', 'recipient_key')
        )
        return [
            InstanceState(
                template_id=template_id,
                record_id=record_id,
                generation=instance.generation,
                level=instance.level,
                recipient_key=instance.recipient_key,
                last_sent_at=instance.last_sent_at,
                cancelled=instance.cancelled,
            )
            for instance in instances
        ]
