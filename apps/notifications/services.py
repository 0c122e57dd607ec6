"""
Service layer for notifications app.

Delivery channel used by the escalation engine:
- Email through Django's mail framework (EMAIL_BACKEND, EMAIL_TIMEOUT)
- SMS through the console backend (development) or an HTTP gateway

Every send returns a DeliveryResult; transport errors are reported as a
failed result and never raised. Retrying is left to the next cycle.
"""

import logging
import uuid
from email.utils import make_msgid
from smtplib import SMTPException

import requests
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.core.mail.utils import DNS_NAME

from apps.escalations.definitions import Channel, DeliveryResult

logger = logging.getLogger(__name__)


class EmailSmsChannel:
    """
    Email + SMS delivery channel.

    Args:
        from_email: Sender address (defaults to DEFAULT_FROM_EMAIL)
        sms_backend: 'console' or 'http' (defaults to SMS_BACKEND)
        gateway_url: HTTP gateway endpoint (defaults to SMS_GATEWAY_URL)
        gateway_token: Bearer token for the gateway (defaults to SMS_GATEWAY_TOKEN)
        sms_timeout: Gateway request timeout in seconds (defaults to SMS_TIMEOUT)
        sender_id: SMS sender name/number (defaults to SMS_SENDER_ID)
    """

    def __init__(self, from_email=None, sms_backend=None, gateway_url=None,
                 gateway_token=None, sms_timeout=None, sender_id=None):
        self.from_email = from_email or getattr(settings, 'DEFAULT_FROM_EMAIL', 'ehs-noreply@example.com')
        self.sms_backend = sms_backend or getattr(settings, 'SMS_BACKEND', 'console')
        self.gateway_url = gateway_url or getattr(settings, 'SMS_GATEWAY_URL', '')
        self.gateway_token = gateway_token or getattr(settings, 'SMS_GATEWAY_TOKEN', '')
        self.sms_timeout = sms_timeout or getattr(settings, 'SMS_TIMEOUT', 10)
        self.sender_id = sender_id or getattr(settings, 'SMS_SENDER_ID', 'EHS')

    # ==========================================================================
    # Email
    # ==========================================================================

    def send_email(self, recipient, subject, body, html_body=None):
        """
        Send one escalation email.

        Args:
            recipient: Recipient with an email address
            subject: Subject line (already framed with the level prefix)
            body: Plain text body
            html_body: Optional HTML alternative

        Returns:
            DeliveryResult
        """
        if not recipient.email:
            return DeliveryResult(success=False, channel=Channel.EMAIL, error='Recipient has no email address')

        message_id = make_msgid(domain=str(DNS_NAME))
        email = EmailMultiAlternatives(
            subject=subject,
            body=body,
            from_email=self.from_email,
            to=[recipient.email],
            headers={'Message-ID': message_id},
        )
        if html_body:
            email.attach_alternative(html_body, 'text/html')

        try:
            sent = email.send()
        except (SMTPException, OSError) as e:
            logger.error(f'Failed to send escalation email to {recipient.email}: {e}')
            return DeliveryResult(success=False, channel=Channel.EMAIL, error=str(e))

        if not sent:
            return DeliveryResult(success=False, channel=Channel.EMAIL, error='Email backend accepted no messages')
        return DeliveryResult(success=True, channel=Channel.EMAIL, message_id=message_id)

    # ==========================================================================
    # SMS
    # ==========================================================================

    def send_sms(self, recipient, body):
        """
        Send one escalation SMS.

        Returns:
            DeliveryResult
        """
        if not recipient.phone:
            return DeliveryResult(success=False, channel=Channel.SMS, error='Recipient has no phone number')

        if self.sms_backend == 'http':
            return self._send_sms_http(recipient.phone, body)
        return self._send_sms_console(recipient.phone, body)

    def _send_sms_console(self, phone, body):
        message_id = f'console-{uuid.uuid4().hex[:12]}'
        logger.info(f'SMS to {phone} [{message_id}]: {body}')
        return DeliveryResult(success=True, channel=Channel.SMS, message_id=message_id)

    def _send_sms_http(self, phone, body):
        if not self.gateway_url:
            return DeliveryResult(success=False, channel=Channel.SMS, error='SMS_GATEWAY_URL is not configured')

        headers = {'Content-Type': 'application/json'}
        if self.gateway_token:
            headers['Authorization'] = f'Bearer {self.gateway_token}'

        try:
            response = requests.post(
                self.gateway_url,
                json={'to': phone, 'from': self.sender_id, 'body': body},
                headers=headers,
                timeout=self.sms_timeout,
            )
            response.raise_for_status()
        except requests.Timeout:
            logger.error(f'SMS gateway timed out after {self.sms_timeout}s sending to {phone}')
            return DeliveryResult(
                success=False, channel=Channel.SMS,
                error=f'SMS gateway timed out after {self.sms_timeout}s',
            )
        except requests.RequestException as e:
            logger.error(f'SMS gateway error sending to {phone}: {e}')
            return DeliveryResult(success=False, channel=Channel.SMS, error=str(e))

        try:
            message_id = response.json().get('id')
        except ValueError:
            message_id = None
        return DeliveryResult(success=True, channel=Channel.SMS, message_id=message_id)
