"""
Management command: issue a bearer key for a customer, restaurant or delivery
partner. Stands in for the OTP login flow in development and tests.
"""
from django.core.management.base import BaseCommand, CommandError

from dispatch.models import ACCOUNT_MODELS, AccountToken, AccountType


class Command(BaseCommand):
    help = 'Issue an API bearer key for a customer, restaurant or delivery account'

    def add_arguments(self, parser):
        parser.add_argument('account_type', choices=AccountType.values)
        parser.add_argument('account_id', type=int)
        parser.add_argument(
            '--revoke-existing',
            action='store_true',
            help='Delete the account\'s other keys first',
        )

    def handle(self, *args, **options):
        account_type = options['account_type']
        account_id = options['account_id']
        model = ACCOUNT_MODELS[account_type]
        account = model.objects.filter(pk=account_id).first()
        if account is None:
            raise CommandError(f'No {account_type} account with id={account_id}')
        if options['revoke_existing']:
            deleted, _ = AccountToken.objects.filter(
                account_type=account_type, account_id=account_id
            ).delete()
            if deleted:
                self.stdout.write(self.style.WARNING(f'Revoked {deleted} existing key(s).'))
        token = AccountToken.issue(account_type, account_id)
        self.stdout.write(self.style.SUCCESS(f'Issued key for {account}:'))
        self.stdout.write(token.key)
