"""Email dispatch through Django's mail framework"""
import logging
from smtplib import SMTPException

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import strip_tags

from stockhub.notifications.utils import record_notification

logger = logging.getLogger('stockhub.notifications')


def send_email(to, subject, body, content_type='text', branch=None, user=None):
    """
    Send one email and record it.

    `content_type` is 'text' or 'html'; HTML mail also carries a plain-text
    part. Returns the Notification row (status 'sent' or 'failed').
    """
    html_message = None
    text_body = body
    if content_type == 'html':
        html_message = body
        text_body = strip_tags(body)

    try:
        send_mail(
            subject,
            text_body,
            settings.DEFAULT_FROM_EMAIL,
            [to],
            html_message=html_message,
            fail_silently=False,
        )
    except (SMTPException, OSError) as e:
        logger.error(f"Email to {to} failed: {str(e)}", exc_info=True)
        return record_notification(
            to, body, type='email', subject=subject, status='failed',
            branch=branch, user=user, error_message=str(e),
        )

    logger.info(f"Email '{subject}' sent to {to}")
    return record_notification(to, body, type='email', subject=subject, status='sent', branch=branch, user=user)
