import logging

from django.core.management.base import BaseCommand, CommandError

from users.models import UserModel
from users.roles import Role


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Give a user a role (member, curator or admin). Tokens issued earlier keep the old role.'

    def add_arguments(self, parser):
        parser.add_argument('email')
        parser.add_argument('role', choices=Role.values)

    def handle(self, *args, email, role, **options):
        updated = UserModel.objects.filter(email=email).update(role=role)
        if not updated:
            raise CommandError('No user with email {}.'.format(email))
        logger.info('role of %s set to %s', email, role)
        self.stdout.write('{} is now {}.'.format(email, role))
