# link-aggregator -- <project>/tests.py
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

from unittest import mock

from django.db import InterfaceError, OperationalError
from django.test import SimpleTestCase, TestCase

from graphene.relay import Node

from aggregator import errors
from aggregator.schema import ErrorLoggingMiddleware, schema
from aggregator.utils import format_graphql_errors, pk_from_global_id


class ErrorTaxonomyTests(SimpleTestCase):
    def test_codes_are_distinct(self):
        kinds = [errors.ValidationError, errors.ConflictError, errors.NotFoundError,
                 errors.ForbiddenError, errors.DuplicateVoteError, errors.InvalidStateError,
                 errors.TransientError, errors.AuthenticationError]
        codes = [kind.code for kind in kinds]
        self.assertEqual(len(set(codes)), len(codes))
        # and each has a stable default message
        for kind in kinds:
            self.assertEqual(str(kind()), kind.default_message)

    def test_only_transient_is_retryable(self):
        self.assertEqual(errors.TransientError().extensions,
                         {'code': 'TRANSIENT', 'retryable': True})
        self.assertFalse(errors.DuplicateVoteError().extensions['retryable'])

    def test_storage_errors(self):
        for exc in (OperationalError('timeout'), InterfaceError('connection already closed')):
            with self.assertRaises(errors.TransientError) as cm:
                with errors.storage_errors():
                    raise exc
            self.assertIs(cm.exception.__cause__, exc)

    def test_storage_errors_passes_others_through(self):
        with self.assertRaises(errors.NotFoundError):
            with errors.storage_errors():
                raise errors.NotFoundError()


class GlobalIdTests(SimpleTestCase):
    def test_pk_from_global_id(self):
        self.assertEqual(pk_from_global_id(Node.to_global_id('Link', 42), 'Link'), 42)

    def test_pk_from_bad_global_id(self):
        for gid in ('', 'garbage', Node.to_global_id('Vote', 42), Node.to_global_id('Link', 'x')):
            with self.assertRaises(errors.ValidationError, msg=repr(gid)):
                pk_from_global_id(gid, 'Link')


class ErrorLoggingMiddlewareTests(TestCase):
    query = '''
      query {
        viewer {
          feed { count }
        }
      }
    '''

    def test_unexpected_error_logged(self):
        with mock.patch('links.schema.FeedRanker.list_approved', side_effect=RuntimeError('boom')):
            with self.assertLogs('aggregator.schema', level='ERROR') as cm:
                result = schema.execute(self.query, middleware=[ErrorLoggingMiddleware()])
        self.assertIsNotNone(result.errors)
        self.assertIn('Viewer.feed', cm.output[0])
        self.assertIn('boom', format_graphql_errors(result.errors))

    def test_domain_error_not_logged(self):
        with mock.patch('links.schema.FeedRanker.list_approved',
                        side_effect=errors.TransientError()):
            with mock.patch('aggregator.schema.logger') as logger:
                result = schema.execute(self.query, middleware=[ErrorLoggingMiddleware()])
        self.assertIsInstance(result.errors[0].original_error, errors.TransientError)
        logger.exception.assert_not_called()
