"""
Notification content generation.

Placeholders use the {{fieldName}} syntax (dotted paths allowed). Known
values are substituted with their string form; unknown placeholders are
left in place so authoring mistakes stay visible in the delivered text.
"""

import re

from django.template.loader import render_to_string

from .definitions import NotificationContent, Priority, resolve_field


PLACEHOLDER_RE = re.compile(r'\{\{\s*([\w.]+)\s*\}\}')

# level -> (prefix, priority, description)
LEVEL_FRAMING = {
    1: ('REMINDER:', Priority.NORMAL, 'Initial notification'),
    2: ('FOLLOW-UP:', Priority.HIGH, 'Escalation to management'),
    3: ('URGENT:', Priority.CRITICAL, 'Critical escalation'),
}
MAX_LEVEL_FRAMING = ('EMERGENCY:', Priority.CRITICAL, 'Maximum escalation')


def level_framing(level):
    """Return (prefix, priority, description) for an escalation level."""
    if level in LEVEL_FRAMING:
        return LEVEL_FRAMING[level]
    if isinstance(level, int) and level > 3:
        return MAX_LEVEL_FRAMING
    return LEVEL_FRAMING[1]


def _display(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


def interpolate(text, context):
    """Replace {{name}} placeholders found in `context`, keep the rest verbatim."""
    if not text:
        return ''

    def replace(match):
        value = resolve_field(context, match.group(1))
        return match.group(0) if value is None else _display(value)

    return PLACEHOLDER_RE.sub(replace, text)


class ContentBuilder:
    """
    Renders subject, body and SMS text for a template, record and level.

    Args:
        base_url: Site root used to build the record deep link.
        html_template: Django template wrapping the text body for email.
    """

    html_template = 'escalations/emails/notification.html'

    def __init__(self, base_url='http://localhost:8000', html_template=None):
        self.base_url = base_url.rstrip('/')
        if html_template:
            self.html_template = html_template

    def action_url(self, record):
        return f"{self.base_url}/ehs/record/{record.get('id')}?ref=escalation"

    def build(self, template, record, level, recipient=None):
        prefix, priority, description = level_framing(level)
        action_url = self.action_url(record)

        context = dict(record)
        context['actionUrl'] = action_url
        if recipient is not None and recipient.name:
            context['recipientName'] = recipient.name

        texts = template.notification_templates
        subject = interpolate(texts.email_subject, context)
        body = interpolate(texts.email_body, context)
        sms_body = interpolate(texts.sms, context)

        html_body = render_to_string(self.html_template, {
            'level': level,
            'level_description': description,
            'body': body,
            'action_url': action_url,
            'template_name': template.name,
            'record_id': record.get('id'),
        })

        return NotificationContent(
            level=level,
            subject=f'{prefix} {subject}',
            body=body,
            html_body=html_body,
            sms_body=f'{prefix} {sms_body}',
            action_url=action_url,
            priority=str(priority),
            prefix=prefix,
        )
