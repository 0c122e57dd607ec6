"""
Service layer for escalations app.

All escalation operations used by management commands, the scheduled job,
the admin and the records app are centralized here.

Services:
- build_orchestrator: Orchestrator wired to the database stores and delivery channel
- process_escalations: Run one escalation cycle
- simulate_template: Preview what a template would do for a record
- save_template: Validate and persist a template (version bump)
- clone_template / export_template / import_template: Template management
- trigger_escalation: Escalate one level for a record on demand
- cancel_record_escalations: Cancel every open escalation of a record
- hierarchy_gaps: Hierarchy levels whose roles match nobody
- send_test_notification: Send a template's content for a sample record
"""

import json
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.notifications.services import EmailSmsChannel
from apps.records.models import SafetyRecord

from .conf import EngineConfig
from .content import ContentBuilder
from .definitions import Recipient
from .hierarchy import find_hierarchy_gaps
from .models import EscalationTemplate
from .orchestrator import EscalationOrchestrator
from .stores import DatabaseEscalationStateStore, DjangoRecordStore
from .validators import validate_template

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = (
    'name', 'module', 'description', 'active', 'applicability_rules',
    'hierarchy', 'triggers', 'notification_templates',
)

SAMPLE_RECORD = {
    'id': 'TEST-001',
    'title': 'Test Safety Record',
    'description': 'Sample record used for a test notification',
    'priority': 'High',
    'status': 'Open',
    'location': 'Test Location',
    'department': 'Safety',
}


def build_orchestrator(config=None, channel=None):
    """
    Orchestrator over the database record and state stores.

    Args:
        config: EngineConfig (defaults to settings)
        channel: Delivery channel (defaults to EmailSmsChannel)

    Returns:
        EscalationOrchestrator
    """
    return EscalationOrchestrator(
        store=DjangoRecordStore(),
        channel=channel or EmailSmsChannel(),
        state=DatabaseEscalationStateStore(),
        config=config or EngineConfig.from_settings(),
    )


def process_escalations(now=None, orchestrator=None):
    """
    Run one escalation cycle.

    Returns:
        CycleSummary
    """
    orchestrator = orchestrator or build_orchestrator()
    return orchestrator.process_escalations(now or timezone.now())


def simulate_template(template, record, now=None, orchestrator=None):
    """
    Preview a template against a record. Nothing is sent or stored.

    Args:
        template: EscalationTemplate instance
        record: SafetyRecord instance or record mapping
        now: Evaluation time (defaults to now)

    Returns:
        list of SimulationResult
    """
    if isinstance(record, SafetyRecord):
        record = record.as_record()
    orchestrator = orchestrator or build_orchestrator()
    return orchestrator.simulate(template.to_definition(), record, now or timezone.now())


# =============================================================================
# Template management
# =============================================================================

def save_template(data, instance=None):
    """
    Validate and persist a template definition.

    Args:
        data: Template JSON (see definitions.py)
        instance: Existing EscalationTemplate to update (optional)

    Returns:
        Saved EscalationTemplate

    Raises:
        ValidationError: With every validation message if the template is invalid
    """
    config = EngineConfig.from_settings()
    errors = validate_template(data, sms_max_length=config.sms_max_length)
    if errors:
        raise ValidationError(errors)

    with transaction.atomic():
        if instance is None:
            template = EscalationTemplate()
        else:
            template = EscalationTemplate.objects.select_for_update().get(pk=instance.pk)
            template.version += 1

        for name in TEMPLATE_FIELDS:
            if name in data:
                setattr(template, name, data[name])
        template.name = template.name.strip()
        template.description = template.description or ''
        template.save()

    logger.info(f'Template saved: {template.name} (id {template.pk}, v{template.version})')
    for gap in hierarchy_gaps(template):
        logger.warning(f'Template {template.pk}: {gap.message}')
    return template


def clone_template(template):
    """
    Copy a template as an inactive draft named "<name> (Copy)".

    Returns:
        New EscalationTemplate
    """
    data = template.to_dict()
    data['name'] = f'{template.name} (Copy)'
    data['active'] = False
    return save_template(data)


def export_template(template):
    """
    Serialize a template for transfer between environments.

    Returns:
        str: JSON document
    """
    data = template.to_dict()
    data.pop('id', None)
    data['exported_at'] = timezone.now().isoformat()
    return json.dumps(data, indent=2)


def import_template(payload):
    """
    Create a template from an exported JSON document.

    Returns:
        New EscalationTemplate (version 1)

    Raises:
        ValidationError: If the document is not valid JSON or not a valid template
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ValidationError(f'Invalid template JSON: {e}')
    if not isinstance(data, dict):
        raise ValidationError('Invalid template JSON: expected an object')

    data = {name: data[name] for name in TEMPLATE_FIELDS if name in data}
    return save_template(data)


def hierarchy_gaps(template, department=None):
    """
    Hierarchy levels of a template whose roles currently match no user.

    Returns:
        list of HierarchyWarning
    """
    return find_hierarchy_gaps(template.to_definition(), DjangoRecordStore(), department)


# =============================================================================
# Event-driven escalation
# =============================================================================

def trigger_escalation(template, record, level, now=None, orchestrator=None):
    """
    Escalate one level of a template for a record, skipping trigger evaluation.

    Suppression and cancellation still apply.

    Returns:
        Counter of log statuses produced
    """
    if isinstance(record, SafetyRecord):
        record = record.as_record()
    orchestrator = orchestrator or build_orchestrator()
    return orchestrator.trigger_escalation(
        template.to_definition(), record, level, now or timezone.now(),
    )


def cancel_record_escalations(record, now=None, orchestrator=None):
    """
    Cancel every open escalation episode of a record.

    Args:
        record: SafetyRecord instance

    Returns:
        list of template ids whose escalation was cancelled
    """
    orchestrator = orchestrator or build_orchestrator()
    return orchestrator.cancel_record(record.reference, module=record.module, now=now)


def send_test_notification(template, email, level=1, record=None, channel=None):
    """
    Send a template's content to an arbitrary address.

    Uses a sample record unless one is given. Escalation state and the
    notification log are not touched.

    Returns:
        DeliveryResult
    """
    if isinstance(record, SafetyRecord):
        record = record.as_record()
    record = record or SAMPLE_RECORD
    config = EngineConfig.from_settings()

    recipient = Recipient(name='Test Recipient', email=email)
    content = ContentBuilder(config.base_url).build(template.to_definition(), record, level, recipient)
    channel = channel or EmailSmsChannel()
    result = channel.send_email(
        recipient, f'[TEST] {content.subject}', content.body, html_body=content.html_body,
    )
    if result.success:
        logger.info(f'Test notification for template {template.pk} sent to {email}')
    else:
        logger.warning(f'Test notification for template {template.pk} to {email} failed: {result.error}')
    return result
