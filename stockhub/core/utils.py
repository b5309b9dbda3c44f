"""Utility functions for activity logging"""
import logging

from django.db import transaction

from .models import ActivityLog

logger = logging.getLogger('stockhub.core')


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_activity_log(request=None, action=None, details=None, user=None, branch_id=None):
    """
    Create an activity log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (login, stock_in, item_created, ...)
        details: Dictionary with action specific data
        user: Optional user override (defaults to request.user if request provided)
        branch_id: Branch the action belongs to; defaults to the user's working branch

    Never raises: a failed log entry must not fail the action being logged.
    """
    try:
        log_user = None
        if user:
            log_user = user
        elif request and hasattr(request, 'user'):
            log_user = request.user

        if log_user is not None and not log_user.is_authenticated:
            log_user = None

        if not action:
            logger.warning(f"Activity log skipped: missing action (details={details})")
            return None

        if branch_id is None and log_user is not None:
            branch_id = log_user.branch_context_id or log_user.branch_id

        # Savepoint so a failed insert leaves the surrounding transaction usable
        with transaction.atomic():
            return ActivityLog.objects.create(
                user=log_user,
                branch_id=branch_id,
                action=action,
                details=details or {},
                ip_address=get_client_ip(request) if request else None,
            )
    except Exception as e:
        logger.error(f"Failed to create activity log ({action}): {str(e)}")
        return None
