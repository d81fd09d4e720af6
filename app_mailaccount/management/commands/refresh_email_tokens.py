"""
Django management command to refresh stale OAuth tokens of the email accounts

Meant to run periodically (cron, k8s CronJob).

Usage:
    python manage.py refresh_email_tokens
    python manage.py refresh_email_tokens --stats
    python manage.py refresh_email_tokens --cleanup --max-errors 10
"""
import logging

from django.core.management.base import BaseCommand, CommandError

from app_mailaccount.exceptions.account_exception import MailAccountException
from app_mailaccount.services.email_account_service import get_email_account_service
from common.annotation.logger import timing

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Refresh OAuth tokens of email accounts that are expired or about to expire'

    def add_arguments(self, parser):
        parser.add_argument(
            '--stats',
            action='store_true',
            help='Only print token refresh statistics',
        )
        parser.add_argument(
            '--cleanup',
            action='store_true',
            help='Deactivate accounts that reached the error limit after the refresh',
        )
        parser.add_argument(
            '--max-errors',
            type=int,
            default=None,
            help='Error count at which --cleanup deactivates an account',
        )

    @timing
    def handle(self, *args, **options):
        service = get_email_account_service()
        try:
            if options.get('stats'):
                stats = service.get_refresh_stats()
                self.stdout.write(
                    f"total={stats['total']} needs_refresh={stats['needs_refresh']} expired={stats['expired']} "
                    f"with_errors={stats['with_errors']} healthy={stats['healthy']}"
                )
                for provider, provider_stats in stats['by_provider'].items():
                    self.stdout.write(f"  {provider}: {provider_stats}")
                return

            result = service.refresh_expired_tokens()
            self.stdout.write(self.style.SUCCESS(
                f"Refreshed {result['refreshed']}/{result['total']} accounts, "
                f"failed {result['failed']}, skipped {result['skipped']}"
            ))

            if options.get('cleanup'):
                account_ids = service.cleanup_failed_accounts(options.get('max_errors'))
                self.stdout.write(self.style.WARNING(f"Deactivated {len(account_ids)} failed accounts"))
        except MailAccountException as e:
            logger.exception(f"[refresh_email_tokens] {e.message}")
            raise CommandError(e.message) from e
