"""
Alert dispatch: stock alerts, event reminders and the regular heartbeat.

Recipients of branch alerts are the branch's own members plus the regional
and district managers whose region or district contains the branch. Only
accounts with a phone number are messaged.
"""
import datetime
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from stockhub.core.roles import REGIONAL_MANAGER, DISTRICT_MANAGER
from stockhub.events.models import EventAlert, default_alert_time
from stockhub.inventory.models import Item
from stockhub.inventory.stock_status import CRITICAL, ADEQUATE, classify_stock, needs_attention
from stockhub.notifications.utils import record_notification
from .whatsapp import send_whatsapp

logger = logging.getLogger('stockhub.notifications')

User = get_user_model()


def branch_recipients(branch):
    return (
        User.objects.filter(is_active=True)
        .exclude(phone__isnull=True)
        .exclude(phone='')
        .filter(
            Q(branch=branch)
            | Q(role=REGIONAL_MANAGER, region_id=branch.region_id)
            | Q(role=DISTRICT_MANAGER, district_id=branch.district_id)
        )
        .distinct()
    )


def _sent(notification):
    return notification is not None and notification.status == 'sent'


# ==================== STOCK ALERTS ====================

def stock_alert_message(item, quantity, stock_status, now=None):
    now = timezone.localtime(now or timezone.now())
    urgency = 'CRITICAL' if stock_status == CRITICAL else 'LOW STOCK'
    action = (
        'URGENT: Immediate restocking required!'
        if stock_status == CRITICAL
        else 'Action needed: Please consider restocking soon.'
    )
    return (
        f"{urgency} ALERT\n\n"
        f"Item: {item.name}\n"
        f"Current: {quantity} {item.unit}\n"
        f"Threshold: {item.threshold_level} {item.unit}\n"
        f"Branch: {item.branch.name}\n\n"
        f"{action}\n\n"
        f"Time: {now:%Y-%m-%d %H:%M}"
    )


def send_stock_alert(item_id):
    """
    WhatsApp a low/critical stock alert for one item to its branch recipients.

    Returns a summary dict; adequate items and branches with WhatsApp switched
    off are skipped.
    """
    item = Item.objects.select_related('branch', 'stock').get(pk=item_id)
    stock = getattr(item, 'stock', None)
    quantity = stock.current_quantity if stock else 0
    stock_status = classify_stock(quantity, item.threshold_level)
    summary = {
        'item': item.name,
        'branch': item.branch.name,
        'alert_type': stock_status,
        'notifications_sent': 0,
        'recipients': [],
    }

    if stock_status == ADEQUATE:
        summary['skipped'] = 'Stock level is adequate'
        return summary

    if not item.branch.notifications_enabled('whatsapp'):
        logger.info(f"WhatsApp notifications disabled for branch {item.branch.name}; stock alert for '{item.name}' not sent")
        summary['skipped'] = 'WhatsApp notifications disabled for this branch'
        return summary

    message = stock_alert_message(item, quantity, stock_status)
    for user in branch_recipients(item.branch):
        notification = send_whatsapp(
            user.phone, message,
            type='stock_alert',
            subject=f'Stock Alert: {item.name}',
            branch=item.branch,
            user=user,
        )
        if _sent(notification):
            summary['recipients'].append({'user': user.display_name, 'phone': user.phone})

    summary['notifications_sent'] = len(summary['recipients'])
    logger.info(f"Stock alert for '{item.name}' ({stock_status}) sent to {summary['notifications_sent']} recipients")
    return summary


def send_stock_alerts(branch_id=None):
    """Alert every low or critical item, optionally in one branch only"""
    items = Item.objects.select_related('branch', 'stock')
    if branch_id:
        items = items.filter(branch_id=branch_id)
    results = []
    for item in needs_attention(items):
        try:
            results.append(send_stock_alert(item.id))
        except Exception as e:
            logger.error(f"Stock alert for item {item.id} failed: {str(e)}", exc_info=True)
    return results


# ==================== EVENT REMINDERS ====================

def event_reminder_message(event, now=None):
    now = timezone.localtime(now or timezone.now())
    description = f"{event.description}\n" if event.description else ''
    return (
        f"EVENT ALERT REMINDER\n\n"
        f"Event: {event.title}\n"
        f"{description}"
        f"Date: {event.event_date:%Y-%m-%d}\n"
        f"Branch: {event.branch.name}\n"
        f"Type: {event.event_type}\n\n"
        f"This event is scheduled for today!\n"
        f"Please prepare accordingly.\n\n"
        f"Sent: {now:%Y-%m-%d %H:%M}"
    )


def wants_event_reminders(user, branch):
    """WhatsApp on for the branch or the user, and event reminders on for the user"""
    user_settings = user.notification_settings or {}
    whatsapp_ok = branch.notifications_enabled('whatsapp') or bool(user_settings.get('whatsapp'))
    return whatsapp_ok and bool(user_settings.get('eventReminders', True))


def send_event_reminder(event, now=None):
    """
    WhatsApp a reminder for `event` to eligible branch recipients and leave
    an in-app notification for the branch. Returns a summary dict.
    """
    branch = event.branch
    message = event_reminder_message(event, now)
    recipients = []
    for user in branch_recipients(branch):
        if not wants_event_reminders(user, branch):
            continue
        notification = send_whatsapp(
            user.phone, message,
            type='event_reminder',
            subject=f'Event Alert: {event.title}',
            branch=branch,
            user=user,
        )
        if _sent(notification):
            recipients.append({'user': user.display_name, 'phone': user.phone})

    record_notification(
        'branch',
        f'Event "{event.title}" is scheduled for today at your branch.',
        type='event_reminder',
        subject=f'Event Alert: {event.title}',
        branch=branch,
    )
    logger.info(f"Event reminder for '{event.title}' sent to {len(recipients)} recipients")
    return {
        'event': event.title,
        'branch': branch.name,
        'notifications_sent': len(recipients),
        'recipients': recipients,
    }


def _minutes(value: datetime.time) -> int:
    return value.hour * 60 + value.minute


def send_event_alerts(now=None):
    """
    Process today's pending event alerts at the configured alert time.

    Alerts are only sent within EVENT_ALERT_WINDOW_MINUTES after the alert
    time. Alerts of branches with WhatsApp switched off stay pending.
    """
    now = timezone.localtime(now or timezone.now())
    alert_time = default_alert_time()
    window = settings.EVENT_ALERT_WINDOW_MINUTES

    due = EventAlert.objects.select_related('event', 'event__branch', 'branch').filter(
        status='pending',
        alert_date=now.date(),
        alert_time=alert_time,
    )

    processed = []
    for alert in due:
        minutes_diff = _minutes(now.time()) - _minutes(alert.alert_time)
        if minutes_diff < 0 or minutes_diff > window:
            logger.debug(f"Event alert {alert.id} outside send window ({minutes_diff} min)")
            continue

        if not alert.branch.notifications_enabled('whatsapp'):
            logger.info(f"WhatsApp notifications disabled for branch {alert.branch.name}; event alert {alert.id} skipped")
            continue

        try:
            summary = send_event_reminder(alert.event, now)
        except Exception as e:
            logger.error(f"Event alert {alert.id} failed: {str(e)}", exc_info=True)
            alert.status = 'failed'
            alert.save(update_fields=['status'])
            continue

        alert.status = 'sent'
        alert.sent_at = timezone.now()
        alert.save(update_fields=['status', 'sent_at'])
        summary['alert_id'] = alert.id
        processed.append(summary)

    logger.info(f"Event alerts processed: {len(processed)}")
    return processed


# ==================== REGULAR ALERTS ====================

def regular_alert_message(user, now=None):
    now = timezone.localtime(now or timezone.now())
    branch_name = user.branch.name if user.branch_id else 'Your Branch'
    return (
        f"REGULAR ALERT\n\n"
        f"Hi {user.display_name}!\n"
        f"Time: {now:%Y-%m-%d %H:%M}\n"
        f"Branch: {branch_name}\n\n"
        f"This is your automated status alert.\n"
        f"System is working."
    )


def send_regular_alerts(now=None):
    """Heartbeat message to every active user with WhatsApp switched on"""
    users = (
        User.objects.filter(is_active=True, notification_settings__whatsapp=True)
        .exclude(phone__isnull=True)
        .exclude(phone='')
        .select_related('branch')
    )
    sent = []
    for user in users:
        notification = send_whatsapp(
            user.phone, regular_alert_message(user, now),
            type='whatsapp',
            subject='Regular alert',
            branch=user.branch,
            user=user,
        )
        if _sent(notification):
            sent.append({'user': user.display_name, 'phone': user.phone})
    logger.info(f"Regular alerts sent: {len(sent)}")
    return sent
