"""
Template validation.

validate_template() collects every problem in a template definition so the
author can fix them in one pass. save_template() (services.py) raises a
ValidationError carrying the whole list and refuses to persist.
"""

import re

from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from .definitions import Logic, Module, TriggerType
from .rules import Operator

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
NAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-_()]+$')


def _is_positive_int(value):
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _is_offset(value):
    if value in (None, ''):
        return True
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _validate_rules(rules, errors):
    if not isinstance(rules, list):
        errors.append('Applicability rules must be a list')
        return
    for index, rule in enumerate(rules, start=1):
        if not isinstance(rule, dict):
            errors.append(f'Rule {index}: Must be an object')
            continue
        field = rule.get('field')
        if not isinstance(field, str) or not field.strip():
            errors.append(f'Rule {index}: Field is required')

        operator = rule.get('operator')
        if operator not in Operator.values:
            errors.append(f'Rule {index}: Valid operator is required')
        elif Operator(operator).needs_value and rule.get('value') is None:
            errors.append(f'Rule {index}: Value is required')

        logic = rule.get('logic')
        if logic and logic not in Logic.values:
            errors.append(f'Rule {index}: Logic must be AND or OR')


def _validate_hierarchy(hierarchy, errors):
    levels = set()
    if not isinstance(hierarchy, list) or not hierarchy:
        errors.append('At least one hierarchy level is required')
        return levels

    for index, level in enumerate(hierarchy, start=1):
        if not isinstance(level, dict):
            errors.append(f'Hierarchy level {index}: Must be an object')
            continue
        number = level.get('level')
        if not _is_positive_int(number):
            errors.append(f'Hierarchy level {index}: Valid level number is required')
        elif number in levels:
            errors.append(f'Hierarchy level {index}: Level {number} is defined more than once')
        else:
            levels.add(number)

        roles = level.get('roles') or []
        fallback = level.get('fallback_email')
        if not isinstance(roles, list):
            errors.append(f'Hierarchy level {index}: Roles must be a list')
            roles = []
        if not roles and not fallback:
            errors.append(f'Hierarchy level {index}: Roles or fallback email is required')
        if fallback:
            try:
                validate_email(fallback)
            except ValidationError:
                errors.append(f'Hierarchy level {index}: Invalid fallback email format')
    return levels


def _validate_triggers(triggers, levels, errors):
    if not isinstance(triggers, list) or not triggers:
        errors.append('At least one trigger is required')
        return

    for index, trigger in enumerate(triggers, start=1):
        if not isinstance(trigger, dict):
            errors.append(f'Trigger {index}: Must be an object')
            continue
        trigger_type = trigger.get('type')
        if trigger_type not in TriggerType.values:
            errors.append(f'Trigger {index}: Valid trigger type is required')

        number = trigger.get('level')
        if not _is_positive_int(number):
            errors.append(f'Trigger {index}: Valid level number is required')
        elif levels and number not in levels:
            errors.append(f'Trigger {index}: Level {number} does not exist in the hierarchy')

        if trigger_type == TriggerType.TIME:
            if not trigger.get('reference_field'):
                errors.append(f'Trigger {index}: Reference field is required for time-based triggers')
            for offset in ('days_before', 'days_after'):
                if not _is_offset(trigger.get(offset)):
                    errors.append(f'Trigger {index}: {offset} must be a whole number of days (0 or more)')
        elif trigger_type == TriggerType.EVENT:
            if not trigger.get('field'):
                errors.append(f'Trigger {index}: Field is required for event-based triggers')
            if 'value' not in trigger:
                errors.append(f'Trigger {index}: Value is required for event-based triggers')


def _validate_notification_templates(texts, sms_max_length, errors):
    if not isinstance(texts, dict) or not texts:
        errors.append('Notification templates are required')
        return

    email = texts.get('email')
    if not isinstance(email, dict) or not email:
        errors.append('Email notification template is required')
    else:
        if not email.get('subject'):
            errors.append('Email subject is required')
        if not email.get('body'):
            errors.append('Email body is required')

    sms = texts.get('sms')
    if not sms:
        errors.append('SMS notification template is required')
    elif len(sms) > sms_max_length:
        errors.append(f'SMS body must be at most {sms_max_length} characters')


def validate_template(data, sms_max_length=160):
    """
    Validate a template definition (JSON form).

    Returns:
        list of error messages; empty when the template is valid
    """
    errors = []

    name = (data.get('name') or '').strip()
    if not name:
        errors.append('Template name is required')
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f'Template name must be less than {NAME_MAX_LENGTH} characters')
    elif not NAME_PATTERN.match(name):
        errors.append('Template name contains invalid characters')

    if data.get('module') not in Module.values:
        errors.append('Valid module type is required')

    description = data.get('description') or ''
    if len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(f'Description must be less than {DESCRIPTION_MAX_LENGTH} characters')

    _validate_rules(data.get('applicability_rules') or [], errors)
    levels = _validate_hierarchy(data.get('hierarchy'), errors)
    _validate_triggers(data.get('triggers'), levels, errors)
    _validate_notification_templates(data.get('notification_templates'), sms_max_length, errors)

    return errors


def check_template(data, sms_max_length=160):
    """
    Raise ValidationError listing every problem in a template definition.

    Raises:
        ValidationError: If the template is invalid
    """
    errors = validate_template(data, sms_max_length=sms_max_length)
    if errors:
        raise ValidationError(errors)
