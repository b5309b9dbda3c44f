"""Helpers for recording dispatched messages"""
import logging

from django.db import transaction
from django.utils import timezone

from .models import Notification

logger = logging.getLogger('stockhub.notifications')


def record_notification(recipient, message, type='general', subject='', status='sent',
                        branch=None, user=None, error_message=None):
    """
    Store a Notification row.

    Never raises: a failed record must not fail the dispatch it describes.
    """
    try:
        with transaction.atomic():
            return Notification.objects.create(
                recipient=recipient,
                message=message,
                type=type,
                subject=subject or '',
                status=status,
                branch=branch,
                user=user,
                error_message=error_message,
                sent_at=timezone.now() if status == 'sent' else None,
            )
    except Exception as e:
        logger.error(f"Failed to record {type} notification for {recipient}: {str(e)}")
        return None
