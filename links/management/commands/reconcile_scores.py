import logging

from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Count, F

from aggregator.errors import storage_errors
from links.models import LinkModel


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = ("Recount every link's votes and repair any score that doesn't match its number of "
            "voters.")

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true',
                            help='Report drifted scores without changing them.')

    def handle(self, *args, dry_run=False, **options):
        repaired = 0
        with storage_errors():
            drifted = list(LinkModel.objects
                           .annotate(voter_count=Count('votes'))
                           .exclude(score=F('voter_count'))
                           .values_list('pk', 'score', 'voter_count'))
            for pk, score, voter_count in drifted:
                self.stdout.write('link {}: score {} but {} voters'.format(pk, score, voter_count))
                if dry_run:
                    continue
                with transaction.atomic():
                    # recount under a row lock, a vote may have landed since the scan
                    link = LinkModel.objects.select_for_update().get(pk=pk)
                    link.score = link.votes.count()
                    link.save(update_fields=['score'])
                logger.info('repaired score of link %s: %s -> %s', pk, score, link.score)
                repaired += 1
        self.stdout.write('{} link(s) repaired.'.format(repaired))
