from django.core.management.base import BaseCommand

from stockhub.notifications.services.alerts import send_regular_alerts


class Command(BaseCommand):
    help = 'Send the regular WhatsApp status alert to every user with WhatsApp switched on'

    def handle(self, *args, **options):
        sent = send_regular_alerts()
        self.stdout.write(self.style.SUCCESS(f"Regular alerts sent: {len(sent)}"))
