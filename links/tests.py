# link-aggregator -- links/tests.py
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

import datetime
import threading
from io import StringIO
from unittest import mock

import pytz
from django.core.management import call_command
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase
from django.test.utils import CaptureQueriesContext

import graphene
from graphene.relay import Node

from aggregator.errors import (AuthenticationError, ConflictError, DuplicateVoteError,
                               ForbiddenError, InvalidStateError, NotFoundError, TransientError,
                               ValidationError)
from aggregator.schema import Mutation, Query
from aggregator.utils import format_graphql_errors
from links.models import LinkModel, LinkStatus, VoteModel
from links.schema import row_count
from links.services import FeedRanker, ModerationGate, SubmissionHandler, VotingEngine
from users.roles import Role
from users.tests import context_for, create_test_user


# ========== utility functions ==========

def dt(epoch):
    return datetime.datetime.fromtimestamp(epoch).replace(tzinfo=pytz.utc)


def create_link(owner, url='http://a.com', status=LinkStatus.APPROVED, score=0, created=None):
    """Create a link directly in the store, bypassing the submission and moderation rules."""
    link = LinkModel.objects.create(url=url, owner=owner, status=status, score=score)
    if created is not None:
        # created_at is auto_now_add, so it can only be overridden after the fact
        LinkModel.objects.filter(pk=link.pk).update(created_at=dt(created))
        link.refresh_from_db()
    return link


def create_voters(count):
    return [create_test_user(username='voter{}'.format(i), email='voter{}@user.com'.format(i))
            for i in range(count)]


def assert_score_matches_voters(test, link):
    link.refresh_from_db()
    voters = link.voters.count()
    test.assertEqual(link.score, voters,
                     msg='link {} has score {} but {} voters'.format(link.pk, link.score, voters))


# ========== Submission Handler ==========

class SubmissionHandlerTests(TestCase):
    def setUp(self):
        self.user = create_test_user()
        self.handler = SubmissionHandler()

    def test_submit(self):
        link = self.handler.submit('https://x.com/a', self.user.pk, description='An example')
        self.assertEqual(link.url, 'https://x.com/a')
        self.assertEqual(link.status, LinkStatus.PENDING)
        self.assertEqual(link.score, 0)
        self.assertEqual(link.owner_id, self.user.pk)
        self.assertEqual(LinkModel.objects.get(pk=link.pk).description, 'An example')

    def test_submit_duplicate(self):
        self.handler.submit('https://x.com/a', self.user.pk)
        other = create_test_user(username='other', email='other@user.com')
        with self.assertRaises(ConflictError):
            self.handler.submit('https://x.com/a', other.pk)
        self.assertEqual(LinkModel.objects.count(), 1)

    def test_submit_no_normalization(self):
        """URLs are matched exactly, so a trailing slash makes a different link"""
        self.handler.submit('http://x.com', self.user.pk)
        self.handler.submit('http://x.com/', self.user.pk)
        self.assertEqual(LinkModel.objects.count(), 2)

    def test_submit_malformed(self):
        for url in ('', 'not a url', 'http://', 'x.com/a', None):
            with self.assertRaises(ValidationError, msg=repr(url)):
                self.handler.submit(url, self.user.pk)
        self.assertFalse(LinkModel.objects.exists())

    def test_submit_unknown_owner(self):
        with self.assertRaises(NotFoundError):
            self.handler.submit('https://x.com/a', self.user.pk + 100)


# ========== Moderation Gate ==========

class ModerationGateTests(TestCase):
    def setUp(self):
        self.owner = create_test_user()
        self.link = create_link(self.owner, status=LinkStatus.PENDING)
        self.gate = ModerationGate()

    def test_approve(self):
        link = self.gate.approve(self.link.pk, Role.CURATOR)
        self.assertEqual(link.status, LinkStatus.APPROVED)
        self.assertEqual(LinkModel.objects.get(pk=self.link.pk).status, LinkStatus.APPROVED)

    def test_reject(self):
        link = self.gate.reject(self.link.pk, Role.ADMIN)
        self.assertEqual(link.status, LinkStatus.REJECTED)

    def test_approve_twice(self):
        """re-approval is an error, not a no-op"""
        self.gate.approve(self.link.pk, Role.CURATOR)
        with self.assertRaises(InvalidStateError):
            self.gate.approve(self.link.pk, Role.CURATOR)

    def test_terminal_states(self):
        rejected = create_link(self.owner, url='http://b.com', status=LinkStatus.REJECTED)
        approved = create_link(self.owner, url='http://c.com', status=LinkStatus.APPROVED)
        for link in (rejected, approved):
            for action in (self.gate.approve, self.gate.reject):
                with self.assertRaises(InvalidStateError):
                    action(link.pk, Role.ADMIN)
        self.assertEqual(LinkModel.objects.get(pk=rejected.pk).status, LinkStatus.REJECTED)
        self.assertEqual(LinkModel.objects.get(pk=approved.pk).status, LinkStatus.APPROVED)

    def test_member_cannot_moderate(self):
        with self.assertRaises(ForbiddenError):
            self.gate.approve(self.link.pk, Role.MEMBER)
        self.assertEqual(LinkModel.objects.get(pk=self.link.pk).status, LinkStatus.PENDING)

    def test_unknown_link(self):
        with self.assertRaises(NotFoundError):
            self.gate.approve(self.link.pk + 100, Role.CURATOR)


# ========== Voting Engine ==========

class VotingEngineTests(TestCase):
    def setUp(self):
        self.owner = create_test_user()
        self.link = create_link(self.owner)
        self.voter = create_test_user(username='voter', email='voter@user.com')
        self.engine = VotingEngine()

    def test_vote(self):
        score = self.engine.cast_vote(self.link.pk, self.voter.pk)
        self.assertEqual(score, 1)
        self.assertEqual(list(self.voter.upvoted_links.all()), [self.link])
        assert_score_matches_voters(self, self.link)

    def test_vote_twice(self):
        """one success then DuplicateVoteError, and the score only goes up once"""
        self.engine.cast_vote(self.link.pk, self.voter.pk)
        with self.assertRaises(DuplicateVoteError):
            self.engine.cast_vote(self.link.pk, self.voter.pk)
        self.link.refresh_from_db()
        self.assertEqual(self.link.score, 1)
        assert_score_matches_voters(self, self.link)

    def test_duplicate_vote_is_not_a_conflict(self):
        self.assertFalse(issubclass(DuplicateVoteError, ConflictError))

    def test_vote_already_recorded(self):
        """a vote that landed between our status check and our insert still counts as a duplicate,
        and doesn't bump the score
        """
        VoteModel.objects.create(user=self.voter, link=self.link)
        LinkModel.objects.filter(pk=self.link.pk).update(score=1)
        with self.assertRaises(DuplicateVoteError):
            self.engine.cast_vote(self.link.pk, self.voter.pk)
        self.link.refresh_from_db()
        self.assertEqual(self.link.score, 1)

    def test_many_voters(self):
        for i, voter in enumerate(create_voters(5), start=1):
            self.assertEqual(self.engine.cast_vote(self.link.pk, voter.pk), i)
        assert_score_matches_voters(self, self.link)

    def test_vote_on_unapproved(self):
        """pending and rejected links can't be voted on, whatever their vote history"""
        pending = create_link(self.owner, url='http://b.com', status=LinkStatus.PENDING)
        rejected = create_link(self.owner, url='http://c.com', status=LinkStatus.REJECTED)
        VoteModel.objects.create(user=self.voter, link=rejected)
        for link in (pending, rejected):
            with self.assertRaisesMessage(ForbiddenError, 'Only approved links can be voted on'):
                self.engine.cast_vote(link.pk, self.voter.pk)
        self.assertEqual(LinkModel.objects.get(pk=pending.pk).score, 0)
        self.assertEqual(LinkModel.objects.get(pk=rejected.pk).score, 0)

    def test_vote_unknown_link(self):
        with self.assertRaisesMessage(NotFoundError, 'Link not found'):
            self.engine.cast_vote(self.link.pk + 100, self.voter.pk)

    def test_vote_unknown_user(self):
        with self.assertRaisesMessage(NotFoundError, 'User not found'):
            self.engine.cast_vote(self.link.pk, self.voter.pk + 100)
        self.assertFalse(VoteModel.objects.exists())

    def test_checks_in_order(self):
        """the link's status is checked before the user is looked up"""
        pending = create_link(self.owner, url='http://b.com', status=LinkStatus.PENDING)
        with self.assertRaises(ForbiddenError):
            self.engine.cast_vote(pending.pk, self.voter.pk + 100)

    def test_storage_failure(self):
        """a storage failure mid-vote surfaces as TransientError and leaves nothing behind"""
        votes = mock.Mock()
        votes.create.side_effect = OperationalError('database is locked')
        engine = VotingEngine(votes=votes)
        with self.assertRaises(TransientError) as cm:
            engine.cast_vote(self.link.pk, self.voter.pk)
        self.assertTrue(cm.exception.retryable)
        self.link.refresh_from_db()
        self.assertEqual(self.link.score, 0)
        # and the same vote goes through once storage recovers
        self.assertEqual(self.engine.cast_vote(self.link.pk, self.voter.pk), 1)

    def test_failed_increment_rolls_back_vote(self):
        """the vote row and the score change commit together or not at all"""
        with mock.patch.object(LinkModel.objects, 'increment_score',
                               side_effect=OperationalError('disk I/O error')):
            with self.assertRaises(TransientError):
                self.engine.cast_vote(self.link.pk, self.voter.pk)
        self.assertFalse(VoteModel.objects.exists())
        assert_score_matches_voters(self, self.link)


class ConcurrentVoteTests(TransactionTestCase):
    def test_concurrent_votes_same_pair(self):
        """N simultaneous votes by one user on one link: exactly one succeeds, every other attempt
        fails as a duplicate (or a retryable storage error), and the score matches the votes
        """
        owner = create_test_user()
        link = create_link(owner)
        voter = create_test_user(username='voter', email='voter@user.com')
        n = 8
        barrier = threading.Barrier(n)
        outcomes = []
        outcomes_lock = threading.Lock()

        def vote():
            try:
                barrier.wait()
                try:
                    outcome = VotingEngine().cast_vote(link.pk, voter.pk)
                except (DuplicateVoteError, TransientError) as e:
                    outcome = e
                with outcomes_lock:
                    outcomes.append(outcome)
            finally:
                connection.close()

        threads = [threading.Thread(target=vote) for _ in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(outcomes), n, msg=repr(outcomes))
        successes = [o for o in outcomes if isinstance(o, int)]
        failures = [o for o in outcomes if not isinstance(o, int)]
        self.assertEqual(successes, [1], msg=repr(outcomes))
        self.assertEqual(len(failures), n - 1, msg=repr(outcomes))
        for failure in failures:
            self.assertIsInstance(failure, (DuplicateVoteError, TransientError))
        self.assertEqual(VoteModel.objects.filter(link=link, user=voter).count(), 1)
        assert_score_matches_voters(self, link)

        with self.assertRaises(DuplicateVoteError):
            VotingEngine().cast_vote(link.pk, voter.pk)
        link.refresh_from_db()
        self.assertEqual(link.score, 1)
        assert_score_matches_voters(self, link)


# ========== Feed Ranker ==========

class FeedRankerTests(TestCase):
    def setUp(self):
        self.owner = create_test_user()
        self.ranker = FeedRanker()

    def test_ranking(self):
        """score descending, newest first among equal scores"""
        a = create_link(self.owner, url='http://a.com', score=5, created=1000000000)
        b = create_link(self.owner, url='http://b.com', score=5, created=1000000400)
        c = create_link(self.owner, url='http://c.com', score=3, created=1000000800)
        self.assertEqual(self.ranker.list_approved(), [b, a, c])

    def test_only_approved(self):
        """pending and rejected links never appear, whatever their score"""
        approved = create_link(self.owner, url='http://a.com', score=1)
        create_link(self.owner, url='http://b.com', status=LinkStatus.PENDING, score=1000)
        create_link(self.owner, url='http://c.com', status=LinkStatus.REJECTED, score=1000)
        self.assertEqual(self.ranker.list_approved(), [approved])

    def test_empty(self):
        self.assertEqual(self.ranker.list_approved(), [])


# ========== reconcile_scores command ==========

class ReconcileScoresTests(TestCase):
    def setUp(self):
        owner = create_test_user()
        self.link = create_link(owner)
        for voter in create_voters(3):
            VoteModel.objects.create(user=voter, link=self.link)
        LinkModel.objects.filter(pk=self.link.pk).update(score=7)

    def test_reconcile(self):
        out = StringIO()
        call_command('reconcile_scores', stdout=out)
        self.assertIn('score 7 but 3 voters', out.getvalue())
        self.assertIn('1 link(s) repaired', out.getvalue())
        assert_score_matches_voters(self, self.link)

    def test_reconcile_dry_run(self):
        out = StringIO()
        call_command('reconcile_scores', '--dry-run', stdout=out)
        self.assertIn('0 link(s) repaired', out.getvalue())
        self.link.refresh_from_db()
        self.assertEqual(self.link.score, 7)

    def test_nothing_to_repair(self):
        call_command('reconcile_scores', stdout=StringIO())
        out = StringIO()
        call_command('reconcile_scores', stdout=out)
        self.assertEqual(out.getvalue(), '0 link(s) repaired.\n')


# ========== GraphQL schema general tests ==========

class RootTests(TestCase):
    def test_root_query(self):
        """Make sure the root query is 'Query'."""
        query = '''
          query RootQueryQuery {
            __schema {
              queryType {
                name  # returns the type of the root query
              }
            }
          }
        '''
        expected = {
            '__schema': {
                'queryType': {
                    'name': 'Query'
                }
            }
        }
        schema = graphene.Schema(query=Query)
        result = schema.execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        assert result.data == expected, '\n'+repr(expected)+'\n'+repr(result.data)


class RelayNodeTests(TestCase):
    """Test that model nodes can be retreived via the Relay Node interface."""
    def test_node_for_link(self):
        owner = create_test_user()
        link = create_link(owner, score=3)
        link_gid = Node.to_global_id('Link', link.pk)
        query = '''
          query {
            node(id: "%s") {
              id
              ...on Link {
                url
                status
                score
                owner { username }
              }
            }
          }
        ''' % link_gid
        expected = {
          'node': {
            'id': link_gid,
            'url': 'http://a.com',
            'status': 'approved',
            'score': 3,
            'owner': {'username': 'testuser'},
          }
        }
        schema = graphene.Schema(query=Query)
        result = schema.execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_owner_name_is_read_at_query_time(self):
        """renaming a user shows up on the links they submitted"""
        owner = create_test_user()
        link = create_link(owner)
        owner.username = 'renamed'
        owner.save()
        query = '''
          query {
            node(id: "%s") {
              ...on Link { owner { username } }
            }
          }
        ''' % Node.to_global_id('Link', link.pk)
        result = graphene.Schema(query=Query).execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, {'node': {'owner': {'username': 'renamed'}}})

    def test_unapproved_link_node_visibility(self):
        """pending and rejected links resolve to null except for their owner and for moderators"""
        owner = create_test_user()
        member = create_test_user(username='member', email='member@user.com')
        curator = create_test_user(username='curator', email='curator@user.com',
                                   role=Role.CURATOR)
        schema = graphene.Schema(query=Query)
        for i, status in enumerate((LinkStatus.PENDING, LinkStatus.REJECTED)):
            link = create_link(owner, url='http://hidden{}.com'.format(i), status=status)
            query = '''
              query {
                node(id: "%s") {
                  ...on Link { url status }
                }
              }
            ''' % Node.to_global_id('Link', link.pk)
            visible = {'node': {'url': link.url, 'status': status}}
            for user, expected in ((None, {'node': None}),
                                   (member, {'node': None}),
                                   (owner, visible),
                                   (curator, visible)):
                result = schema.execute(query, context_value=context_for(user))
                self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
                self.assertEqual(result.data, expected, msg='{} as {}'.format(status, user))
            # no request context at all is treated as anonymous
            result = schema.execute(query)
            self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
            self.assertEqual(result.data, {'node': None})


# ========== feed query tests ==========

class FeedQueryTests(TestCase):
    query = '''
      query FeedTest {
        viewer {
          feed {
            count
            edges {
              node {
                url
                score
              }
            }
          }
        }
      }
    '''

    def test_feed(self):
        owner = create_test_user()
        create_link(owner, url='http://a.com', score=5, created=1000000000)
        create_link(owner, url='http://b.com', score=5, created=1000000400)
        create_link(owner, url='http://c.com', score=3, created=1000000800)
        create_link(owner, url='http://d.com', status=LinkStatus.PENDING, score=1000)
        expected = {
            'viewer': {
                'feed': {
                    'count': 3,
                    'edges': [
                        { 'node': { 'url': 'http://b.com', 'score': 5 } },
                        { 'node': { 'url': 'http://a.com', 'score': 5 } },
                        { 'node': { 'url': 'http://c.com', 'score': 3 } },
                    ]
                }
            }
        }
        schema = graphene.Schema(query=Query)
        result = schema.execute(self.query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_feed_pagination(self):
        owner = create_test_user()
        for i in range(3):
            create_link(owner, url='http://{}.com'.format(i), score=i)
        query = '''
          query {
            viewer {
              feed(first: 2) {
                count
                pageInfo { hasNextPage }
                edges { node { url } }
              }
            }
          }
        '''
        result = graphene.Schema(query=Query).execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        feed = result.data['viewer']['feed']
        self.assertEqual(feed['count'], 3)
        self.assertTrue(feed['pageInfo']['hasNextPage'])
        self.assertEqual([e['node']['url'] for e in feed['edges']], ['http://2.com', 'http://1.com'])


# ========== allVotes query tests ==========

class AllVotesQueryTests(TestCase):
    def test_check_vote_query(self):
        """filtering allVotes on user and link answers "has this user voted for this link?" """
        owner = create_test_user()
        links = [create_link(owner, url='http://{}.com'.format(i)) for i in range(2)]
        voters = create_voters(2)
        for link in links:
            for voter in voters:
                VoteModel.objects.create(link=link, user=voter)
        vote = VoteModel.objects.get(link=links[1], user=voters[0])
        query = '''
          query CheckVoteQuery($userId: ID!, $linkId: ID!) {
            viewer {
              allVotes(filter: {
                user: { id: $userId },
                link: { id: $linkId }
              }) {
                count
                edges { node { id } }
              }
            }
          }
        '''
        variables = {
            'userId': Node.to_global_id('User', voters[0].pk),
            'linkId': Node.to_global_id('Link', links[1].pk),
        }
        expected = {
            'viewer': {
                'allVotes': {
                    'count': 1,
                    'edges': [
                        { 'node': { 'id': Node.to_global_id('Vote', vote.pk) } },
                    ]
                }
            }
        }
        schema = graphene.Schema(query=Query)
        result = schema.execute(query, variable_values=variables)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))
        # a link nobody has voted for yet
        unvoted = create_link(owner, url='http://unvoted.com')
        variables['linkId'] = Node.to_global_id('Link', unvoted.pk)
        result = schema.execute(query, variable_values=variables)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data['viewer']['allVotes'], {'count': 0, 'edges': []})


# ========== createLink mutation tests ==========

class CreateLinkTests(TestCase):
    def setUp(self):
        self.user = create_test_user()
        self.query = '''
          mutation CreateLinkMutation($input: CreateLinkInput!) {
            createLink(input: $input) {
              link {
                url
                status
                score
                owner { username }
              }
              clientMutationId
            }
          }
        '''
        self.variables = {
            'input': {
                'url': 'https://x.com/a',
                'description': 'Description',
                'clientMutationId': 'give_this_back_to_me',
            }
        }
        self.schema = graphene.Schema(query=Query, mutation=Mutation)

    def test_create_link(self):
        result = self.schema.execute(self.query, variable_values=self.variables,
                                     context_value=context_for(self.user))
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        expected = {
            'createLink': {
                'link': {
                    'url': 'https://x.com/a',
                    'status': 'pending',
                    'score': 0,
                    'owner': {'username': 'testuser'},
                },
                'clientMutationId': 'give_this_back_to_me',
            }
        }
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_create_link_twice(self):
        result = self.schema.execute(self.query, variable_values=self.variables,
                                     context_value=context_for(self.user))
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        result = self.schema.execute(self.query, variable_values=self.variables,
                                     context_value=context_for(self.user))
        self.assertIsNotNone(result.errors, msg='createLink should have failed: duplicate url')
        self.assertIsInstance(result.errors[0].original_error, ConflictError)
        self.assertEqual(result.errors[0].extensions, {'code': 'CONFLICT', 'retryable': False})
        self.assertEqual(result.data, {'createLink': None})

    def test_create_link_not_logged_in(self):
        result = self.schema.execute(self.query, variable_values=self.variables,
                                     context_value=context_for())
        self.assertIsNotNone(result.errors, msg='createLink should have failed: no auth token')
        self.assertIsInstance(result.errors[0].original_error, AuthenticationError)
        self.assertFalse(LinkModel.objects.exists())

    def test_create_link_malformed(self):
        self.variables['input']['url'] = 'not a url'
        result = self.schema.execute(self.query, variable_values=self.variables,
                                     context_value=context_for(self.user))
        self.assertIsNotNone(result.errors)
        self.assertEqual(result.errors[0].extensions['code'], 'VALIDATION_ERROR')


# ========== approveLink / rejectLink mutation tests ==========

class ModerationMutationTests(TestCase):
    def setUp(self):
        self.curator = create_test_user(role=Role.CURATOR)
        self.member = create_test_user(username='member', email='member@user.com')
        self.link = create_link(self.curator, status=LinkStatus.PENDING)
        self.link_gid = Node.to_global_id('Link', self.link.pk)
        self.schema = graphene.Schema(query=Query, mutation=Mutation)

    def moderate(self, action, user, link_gid=None):
        query = '''
          mutation Moderate($input: %sLinkInput!) {
            %sLink(input: $input) {
              link { id status }
            }
          }
        ''' % (action.capitalize(), action)
        variables = {'input': {'linkId': link_gid or self.link_gid}}
        return self.schema.execute(query, variable_values=variables,
                                   context_value=context_for(user))

    def test_approve(self):
        result = self.moderate('approve', self.curator)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        expected = {'approveLink': {'link': {'id': self.link_gid, 'status': 'approved'}}}
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_reject(self):
        result = self.moderate('reject', self.curator)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data['rejectLink']['link']['status'], 'rejected')

    def test_approve_twice(self):
        self.moderate('approve', self.curator)
        result = self.moderate('approve', self.curator)
        self.assertIsNotNone(result.errors)
        self.assertIsInstance(result.errors[0].original_error, InvalidStateError)

    def test_member_cannot_moderate(self):
        result = self.moderate('approve', self.member)
        self.assertIsNotNone(result.errors)
        self.assertIsInstance(result.errors[0].original_error, ForbiddenError)
        self.assertEqual(LinkModel.objects.get(pk=self.link.pk).status, LinkStatus.PENDING)

    def test_bad_link_id(self):
        result = self.moderate('approve', self.curator,
                               link_gid=Node.to_global_id('User', self.link.pk))
        self.assertIsInstance(result.errors[0].original_error, ValidationError)
        result = self.moderate('approve', self.curator,
                               link_gid=Node.to_global_id('Link', self.link.pk + 100))
        self.assertIsInstance(result.errors[0].original_error, NotFoundError)


# ========== createVote mutation tests ==========

class CreateVoteTests(TestCase):
    def setUp(self):
        owner = create_test_user(username='owner', email='owner@user.com')
        self.link = create_link(owner)
        self.link_gid = Node.to_global_id('Link', self.link.pk)
        self.user = create_test_user()
        self.user_gid = Node.to_global_id('User', self.user.pk)
        self.query = '''
          mutation CreateVoteMutation($input: CreateVoteInput!) {
            createVote(input: $input) {
              score
              link {
                id
                votes { count }
              }
              clientMutationId
            }
          }
        '''
        self.schema = graphene.Schema(query=Query, mutation=Mutation)

    def vote(self, link_gid=None, user_gid=None, user='default'):
        variables = {
          'input': {
            'linkId': link_gid or self.link_gid,
            'clientMutationId': 'give_this_back_to_me',
          }
        }
        if user_gid:
            variables['input']['userId'] = user_gid
        if user == 'default':
            user = self.user
        return self.schema.execute(self.query, variable_values=variables,
                                   context_value=context_for(user))

    def test_create_vote(self):
        """test normal vote creation, and that duplicate votes are not allowed"""
        result = self.vote(user_gid=self.user_gid)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        expected = {
          'createVote': {
            'score': 1,
            'link': {
              'id': self.link_gid,
              'votes': {
                'count': 1,
              }
            },
            'clientMutationId': 'give_this_back_to_me',
          }
        }
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))
        # verify that a second vote can't be created
        result = self.vote()
        self.assertIsNotNone(result.errors,
                             msg='createVote should have failed: duplicate votes not allowed')
        self.assertIsInstance(result.errors[0].original_error, DuplicateVoteError)
        self.assertEqual(result.errors[0].extensions['code'], 'DUPLICATE_VOTE')
        self.assertIn('already voted', repr(result.errors))
        self.assertEqual(result.data, {'createVote': None})
        assert_score_matches_voters(self, self.link)

    def test_create_vote_not_logged_in(self):
        result = self.vote(user=None)
        self.assertIsNotNone(result.errors, msg='createVote should have failed: no user logged-in')
        self.assertIsInstance(result.errors[0].original_error, AuthenticationError)
        self.assertEqual(result.data, {'createVote': None})

    def test_create_vote_pending_link(self):
        owner = create_test_user(username='other', email='other@user.com')
        pending = create_link(owner, url='http://pending.com', status=LinkStatus.PENDING)
        result = self.vote(link_gid=Node.to_global_id('Link', pending.pk))
        self.assertIsInstance(result.errors[0].original_error, ForbiddenError)
        self.assertIn('Only approved links can be voted on', repr(result.errors))

    def test_create_vote_bad_userid(self):
        """ensure an invalid or mismatched userId causes failure"""
        user2 = create_test_user(username='another', email='ano@user.com')
        for user_gid in (' invalid base64 userId ', Node.to_global_id('User', user2.pk)):
            result = self.vote(user_gid=user_gid)
            self.assertIsNotNone(result.errors, msg=user_gid)
            self.assertIn('user id does not match logged-in user', repr(result.errors))
        self.assertFalse(VoteModel.objects.exists())

    def test_create_vote_bad_link(self):
        """ensure invalid linkId causes failure"""
        result = self.vote(link_gid=Node.to_global_id('Link', self.link.pk + 1))
        self.assertIsInstance(result.errors[0].original_error, NotFoundError)
        self.assertIn('Link not found', repr(result.errors))
        result = self.vote(link_gid='not a global id')
        self.assertIsInstance(result.errors[0].original_error, ValidationError)

    def test_create_vote_storage_failure_after_vote(self):
        """a storage failure re-reading the link is retryable, and the vote stays recorded"""
        with mock.patch.object(LinkModel.objects, 'get',
                               side_effect=OperationalError('database is locked')):
            result = self.vote()
        self.assertIsNotNone(result.errors)
        self.assertIsInstance(result.errors[0].original_error, TransientError)
        self.assertEqual(result.errors[0].extensions, {'code': 'TRANSIENT', 'retryable': True})
        self.assertEqual(result.data, {'createVote': None})
        self.assertTrue(VoteModel.objects.filter(link=self.link, user=self.user).exists())
        assert_score_matches_voters(self, self.link)
        # retrying reports the vote as already cast
        result = self.vote()
        self.assertIsInstance(result.errors[0].original_error, DuplicateVoteError)


class RowCountTests(TestCase):
    def test_queryset_counted_in_the_database(self):
        owner = create_test_user()
        voters = create_voters(3)
        link = create_link(owner)
        for voter in voters:
            VoteModel.objects.create(link=link, user=voter)
        with CaptureQueriesContext(connection) as ctx:
            self.assertEqual(row_count(VoteModel.objects.filter(link=link)), 3)
        self.assertEqual(len(ctx.captured_queries), 1)
        self.assertIn('COUNT(', ctx.captured_queries[0]['sql'].upper())

    def test_list(self):
        self.assertEqual(row_count([]), 0)
        self.assertEqual(row_count(['a', 'b']), 2)
