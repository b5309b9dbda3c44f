from django.core.management.base import BaseCommand

from stockhub.notifications.services.alerts import send_stock_alerts


class Command(BaseCommand):
    help = 'Send WhatsApp alerts for every low or critical item'

    def add_arguments(self, parser):
        parser.add_argument(
            '--branch',
            type=int,
            help='Only alert items of this branch ID',
        )

    def handle(self, *args, **options):
        results = send_stock_alerts(branch_id=options.get('branch'))
        sent = 0
        for summary in results:
            sent += summary['notifications_sent']
            note = f" - {summary['skipped']}" if summary.get('skipped') else ''
            self.stdout.write(
                f"  [{summary['alert_type']}] {summary['item']} ({summary['branch']}): "
                f"{summary['notifications_sent']} sent{note}"
            )
        self.stdout.write(self.style.SUCCESS(f"Items alerted: {len(results)}, messages sent: {sent}"))
