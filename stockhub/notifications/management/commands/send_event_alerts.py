"""
Send today's pending event reminders.

Schedule every few minutes (cron); alerts only go out within
EVENT_ALERT_WINDOW_MINUTES after EVENT_ALERT_TIME.
"""
from django.core.management.base import BaseCommand

from stockhub.notifications.services.alerts import send_event_alerts


class Command(BaseCommand):
    help = "Send WhatsApp reminders for today's pending event alerts"

    def handle(self, *args, **options):
        processed = send_event_alerts()
        for summary in processed:
            self.stdout.write(
                f"  {summary['event']} ({summary['branch']}): {summary['notifications_sent']} sent"
            )
        self.stdout.write(self.style.SUCCESS(f"Event alerts processed: {len(processed)}"))
