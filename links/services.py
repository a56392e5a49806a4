# link-aggregator -- links/services.py
#
# Copyright © 2017 Sean Bolton.
#
# Permission is hereby granted, free of charge, to any person obtaining
# a copy of this software and associated documentation files (the
# "Software"), to deal in the Software without restriction, including
# without limitation the rights to use, copy, modify, merge, publish,
# distribute, sublicense, and/or sell copies of the Software, and to
# permit persons to whom the Software is furnished to do so, subject to
# the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE
# LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION
# OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION
# WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

import logging

from django.core import exceptions as django_exceptions
from django.core.validators import URLValidator
from django.db import IntegrityError, transaction

from aggregator.errors import (ConflictError, DuplicateVoteError, ForbiddenError, InvalidStateError,
                               NotFoundError, ValidationError, storage_errors)
from links.models import LinkModel, LinkStatus, VoteModel
from users.models import UserModel
from users.roles import Capability, has_capability


logger = logging.getLogger(__name__)


# Each component is handed the stores (model managers) it works on when it is built; None means
# the default manager. All shared state lives in the database.


# ========== Submission Handler ==========

class SubmissionHandler:
    url_validator = URLValidator()

    def __init__(self, links=None, users=None):
        self.links = links if links is not None else LinkModel.objects
        self.users = users if users is not None else UserModel.objects

    def submit(self, url, owner_id, description=''):
        """Create a pending link owned by owner_id.

        URLs are compared exactly as given: 'http://x.com' and 'http://x.com/' are different links.
        """
        if not isinstance(url, str) or not url:
            raise ValidationError('A URL is required.')
        try:
            self.url_validator(url)
        except django_exceptions.ValidationError:
            raise ValidationError('"{}" is not a valid URL.'.format(url))
        with storage_errors():
            if not self.users.filter(pk=owner_id).exists():
                raise NotFoundError('User not found.')
            if self.links.filter(url=url).exists():
                raise ConflictError('That link has already been submitted.')
            try:
                # the unique index on url settles a race between two submitters
                with transaction.atomic():
                    link = self.links.create(url=url, description=description or '',
                                             owner_id=owner_id)
            except IntegrityError:
                raise ConflictError('That link has already been submitted.')
        logger.info('link %s submitted by user %s', link.pk, owner_id)
        return link


# ========== Moderation Gate ==========

class ModerationGate:
    # pending is the only state with outgoing transitions
    TRANSITIONS = {
        'approve': (LinkStatus.PENDING, LinkStatus.APPROVED),
        'reject': (LinkStatus.PENDING, LinkStatus.REJECTED),
    }

    def __init__(self, links=None):
        self.links = links if links is not None else LinkModel.objects

    def approve(self, link_id, moderator_role):
        return self._transition('approve', link_id, moderator_role)

    def reject(self, link_id, moderator_role):
        return self._transition('reject', link_id, moderator_role)

    def _transition(self, action, link_id, moderator_role):
        if not has_capability(moderator_role, Capability.MODERATE):
            raise ForbiddenError('Only curators and admins may moderate links.')
        from_status, to_status = self.TRANSITIONS[action]
        with storage_errors():
            if not self.links.transition(link_id, from_status, to_status):
                try:
                    link = self.links.get(pk=link_id)
                except self.links.model.DoesNotExist:
                    raise NotFoundError('Link not found.')
                raise InvalidStateError('Cannot {} a link that is already {}.'
                                        .format(action, link.status))
            link = self.links.get(pk=link_id)
        logger.info('link %s %s by %s', link_id, to_status, moderator_role)
        return link


# ========== Voting Engine ==========

class VotingEngine:
    def __init__(self, links=None, users=None, votes=None):
        self.links = links if links is not None else LinkModel.objects
        self.users = users if users is not None else UserModel.objects
        self.votes = votes if votes is not None else VoteModel.objects

    def cast_vote(self, link_id, user_id):
        """Record user_id's upvote on link_id and return the link's new score.

        The vote row and the score increment commit together or not at all. There is no separate
        "has this user voted?" read: inserting the vote row is the check, and the unique
        (user, link) constraint makes the loser of any race fail with DuplicateVoteError.
        """
        with storage_errors():
            status = self.links.filter(pk=link_id).values_list('status', flat=True).first()
            if status is None:
                raise NotFoundError('Link not found.')
            if status != LinkStatus.APPROVED:
                raise ForbiddenError('Only approved links can be voted on.')
            if not self.users.filter(pk=user_id).exists():
                raise NotFoundError('User not found.')
            with transaction.atomic():
                try:
                    with transaction.atomic():
                        self.votes.create(user_id=user_id, link_id=link_id)
                except IntegrityError:
                    logger.info('duplicate vote by user %s on link %s', user_id, link_id)
                    raise DuplicateVoteError()
                self.links.increment_score(link_id)
                score = self.links.filter(pk=link_id).values_list('score', flat=True).get()
        logger.info('user %s voted on link %s, score now %d', user_id, link_id, score)
        return score


# ========== Feed Ranker ==========

class FeedRanker:
    def __init__(self, links=None):
        self.links = links if links is not None else LinkModel.objects

    def list_approved(self):
        """Return a snapshot list of approved links in feed order."""
        with storage_errors():
            return list(self.links.ranked())
