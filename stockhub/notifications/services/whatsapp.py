"""
WhatsApp dispatch.

WHATSAPP_BACKEND selects the transport:
  - 'console' (default): log only
  - 'twilio': Twilio Messages REST API; requires TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_FROM
Every attempt is recorded as a Notification row.
"""
import logging

import requests
from django.conf import settings

from stockhub.notifications.utils import record_notification

logger = logging.getLogger('stockhub.notifications')

TWILIO_MESSAGES_URL = 'https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json'


class WhatsAppError(Exception):
    """The provider refused or could not be reached"""


def whatsapp_address(phone: str) -> str:
    phone = str(phone).strip()
    return phone if phone.startswith('whatsapp:') else f'whatsapp:{phone}'


def _send_console(to: str, body: str) -> dict:
    logger.info(f"[WA/console] -> {to}: {body}")
    return {'backend': 'console', 'sid': None}


def _send_twilio(to: str, body: str) -> dict:
    sid = settings.TWILIO_ACCOUNT_SID
    token = settings.TWILIO_AUTH_TOKEN
    if not (sid and token):
        raise WhatsAppError('Twilio credentials are not configured')

    try:
        response = requests.post(
            TWILIO_MESSAGES_URL.format(sid=sid),
            data={
                'From': settings.TWILIO_WHATSAPP_FROM,
                'To': whatsapp_address(to),
                'Body': body,
            },
            auth=(sid, token),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise WhatsAppError(f'Twilio request failed: {e}') from e

    if not response.ok:
        raise WhatsAppError(f'Twilio answered {response.status_code}: {response.text[:200]}')
    return {'backend': 'twilio', 'sid': response.json().get('sid')}


def send_whatsapp(to, body, type='whatsapp', subject='', branch=None, user=None):
    """
    Send one WhatsApp message and record it.

    Returns the Notification row (status 'sent' or 'failed'); provider errors
    are logged, not raised.
    """
    if not to:
        logger.debug("WhatsApp skipped: no recipient number")
        return None

    backend = (getattr(settings, 'WHATSAPP_BACKEND', 'console') or 'console').lower()
    try:
        if backend == 'twilio':
            result = _send_twilio(to, body)
        else:
            result = _send_console(to, body)
    except WhatsAppError as e:
        logger.error(f"WhatsApp to {to} failed: {str(e)}")
        return record_notification(
            to, body, type=type, subject=subject, status='failed',
            branch=branch, user=user, error_message=str(e),
        )

    logger.info(f"WhatsApp ({type}) sent to {to} via {result['backend']}")
    return record_notification(to, body, type=type, subject=subject, status='sent', branch=branch, user=user)
