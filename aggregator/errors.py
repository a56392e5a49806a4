# link-aggregator -- <project>/errors.py
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
from contextlib import contextmanager

from django.db import InterfaceError, OperationalError


logger = logging.getLogger(__name__)


# ========== error taxonomy ==========

# Resolvers raise these and let them propagate. graphql-core wraps each one in a GraphQLError,
# keeping it as 'original_error' and copying its 'extensions' dict onto the error it returns, so
# clients can branch on extensions.code instead of matching message text.

class AggregatorError(Exception):
    """Base class for every error this service reports to its callers."""
    code = 'ERROR'
    default_message = 'Something went wrong.'
    retryable = False

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def message(self):
        return self.args[0]

    @property
    def extensions(self):
        return {'code': self.code, 'retryable': self.retryable}


class ValidationError(AggregatorError):
    code = 'VALIDATION_ERROR'
    default_message = 'The request is malformed.'


class ConflictError(AggregatorError):
    code = 'CONFLICT'
    default_message = 'That already exists.'


class NotFoundError(AggregatorError):
    code = 'NOT_FOUND'
    default_message = 'Not found.'


class ForbiddenError(AggregatorError):
    code = 'FORBIDDEN'
    default_message = 'That action is not allowed.'


class DuplicateVoteError(AggregatorError):
    """Raised when a user votes a second time on the same link. Not a ConflictError: clients show
    it as "already voted" rather than as a failure.
    """
    code = 'DUPLICATE_VOTE'
    default_message = 'You have already voted for this link.'


class InvalidStateError(AggregatorError):
    code = 'INVALID_STATE'
    default_message = 'The link is not in a state that allows this change.'


class TransientError(AggregatorError):
    code = 'TRANSIENT'
    default_message = 'A temporary storage problem occurred, please try again.'
    retryable = True


class AuthenticationError(AggregatorError):
    code = 'UNAUTHENTICATED'
    default_message = 'Authentication required.'


@contextmanager
def storage_errors():
    """Re-raise storage timeouts and connection failures as TransientError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.warning('storage failure: %s', e)
        raise TransientError() from e
