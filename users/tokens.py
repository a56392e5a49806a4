# link-aggregator -- users/tokens.py
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
import logging
from collections import namedtuple

import jwt
from django.conf import settings

from aggregator.errors import AuthenticationError


logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'


# The authenticated caller, as far as the rest of the service is concerned. It is trusted as-is:
# nothing downstream goes back to the user table to re-check the role.
Principal = namedtuple('Principal', ['id', 'role'])


def create_token(user):
    """Return a signed bearer token carrying the user's id and role."""
    now = datetime.datetime.now(tz=datetime.timezone.utc)
    payload = {
        'user': {'id': user.pk, 'role': user.role},
        'iat': now,
        'exp': now + settings.JWT_EXPIRATION,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token):
    """Return the Principal for a bearer token, or raise AuthenticationError."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Token has expired.')
    except jwt.PyJWTError as e:
        logger.info('rejected bearer token: %s', e)
        raise AuthenticationError('Token is not valid.')
    try:
        user = payload['user']
        return Principal(id=int(user['id']), role=user['role'])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError('Token is not valid.')


def get_principal_from_auth_token(context):
    """Return the Principal named by the request's Authorization header, or None if the request
    carries no bearer token at all (or no request at all).
    """
    meta = getattr(context, 'META', None) or {}
    auth = meta.get('HTTP_AUTHORIZATION', None)
    if not auth or not auth.startswith('Bearer '):
        return None
    return decode_token(auth[7:])


def require_principal(context):
    principal = get_principal_from_auth_token(context)
    if principal is None:
        raise AuthenticationError()
    return principal
