# link-aggregator -- users/tests.py
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
from io import StringIO

import jwt
from django.conf import settings
from django.core.management import CommandError, call_command
from django.test import TestCase

import graphene
from graphene.relay import Node

from aggregator.errors import AuthenticationError, ConflictError, ValidationError
from aggregator.schema import Mutation, Query
from aggregator.utils import format_graphql_errors
from .models import UserModel
from .roles import Capability, Role, has_capability
from .tokens import create_token, decode_token, get_principal_from_auth_token, require_principal


# ========== utility functions ==========

def create_test_user(username=None, password=None, email=None, role=None):
    user = UserModel(
        username=username or 'testuser',
        email=email or 'test@user.com',
        role=role or Role.MEMBER,
    )
    user.set_password(password or 'abc123')
    user.save()
    return user


def context_for(user=None, header=None):
    """Return a stand-in for the Django request, as far as the resolvers are concerned."""
    if user is not None:
        header = 'Bearer {}'.format(create_token(user))
    class Context(object):
        META = {'HTTP_AUTHORIZATION': header} if header else {}
    return Context


# ========== roles ==========

class CapabilityTests(TestCase):
    def test_member_capabilities(self):
        self.assertTrue(has_capability(Role.MEMBER, Capability.SUBMIT))
        self.assertTrue(has_capability(Role.MEMBER, Capability.VOTE))
        self.assertFalse(has_capability(Role.MEMBER, Capability.MODERATE))

    def test_moderator_capabilities(self):
        for role in (Role.CURATOR, Role.ADMIN, 'curator', 'admin'):
            self.assertTrue(has_capability(role, Capability.MODERATE), msg=role)

    def test_unknown_role(self):
        """roles outside the enumeration can do nothing"""
        self.assertFalse(has_capability('superuser', Capability.VOTE))
        self.assertFalse(has_capability(None, Capability.MODERATE))


# ========== bearer token tests ==========

class TokenTests(TestCase):
    def setUp(self):
        self.user = create_test_user(role=Role.CURATOR)

    def test_token_round_trip(self):
        principal = decode_token(create_token(self.user))
        self.assertEqual(principal.id, self.user.pk)
        self.assertEqual(principal.role, 'curator')

    def test_token_expired(self):
        past = datetime.datetime.now(tz=datetime.timezone.utc) - datetime.timedelta(days=1)
        token = jwt.encode({'user': {'id': self.user.pk, 'role': 'member'}, 'exp': past},
                           settings.JWT_SECRET, algorithm='HS256')
        with self.assertRaisesMessage(AuthenticationError, 'expired'):
            decode_token(token)

    def test_token_wrong_key(self):
        token = jwt.encode({'user': {'id': self.user.pk, 'role': 'admin'}},
                           'some-other-key-that-is-long-enough-for-hs256', algorithm='HS256')
        with self.assertRaisesMessage(AuthenticationError, 'not valid'):
            decode_token(token)

    def test_token_garbage(self):
        with self.assertRaises(AuthenticationError):
            decode_token('AbDbAbDbAbDbA')

    def test_token_without_principal(self):
        token = jwt.encode({'sub': 'someone'}, settings.JWT_SECRET, algorithm='HS256')
        with self.assertRaises(AuthenticationError):
            decode_token(token)


class GetPrincipalTests(TestCase):
    def test_header_missing_or_not_bearer(self):
        """no or non-Bearer HTTP_AUTHORIZATION header means an anonymous request"""
        self.assertIsNone(get_principal_from_auth_token(context_for()))
        self.assertIsNone(get_principal_from_auth_token(context_for(header='ArgleBargle')))
        with self.assertRaises(AuthenticationError):
            require_principal(context_for())

    def test_header_valid(self):
        user = create_test_user()
        principal = get_principal_from_auth_token(context_for(user))
        self.assertEqual(principal.id, user.pk)
        self.assertEqual(principal.role, 'member')

    def test_header_wrong(self):
        """a Bearer header with a bad token is an error, not an anonymous request"""
        with self.assertRaises(AuthenticationError):
            get_principal_from_auth_token(context_for(header='Bearer AbDbAbDbAbDbA'))


# ========== Relay Node tests ==========

class RelayNodeTests(TestCase):
    def test_node_for_user(self):
        user = create_test_user()
        user_gid = Node.to_global_id('User', user.pk)
        query = '''
          query {
            node(id: "%s") {
              id
              ...on User {
                username
                role
              }
            }
          }
        ''' % user_gid
        expected = {
          'node': {
            'id': user_gid,
            'username': 'testuser',
            'role': 'member',
          }
        }
        schema = graphene.Schema(query=Query)
        result = schema.execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_password_not_exposed(self):
        query = '''
          query {
            __type(name: "User") {
              fields { name }
            }
          }
        '''
        schema = graphene.Schema(query=Query)
        result = schema.execute(query)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        names = [f['name'] for f in result.data['__type']['fields']]
        self.assertNotIn('password', names)
        self.assertNotIn('email', names)


class MeQueryTests(TestCase):
    query = '''
      query {
        me { username }
      }
    '''

    def test_me(self):
        user = create_test_user()
        schema = graphene.Schema(query=Query)
        result = schema.execute(self.query, context_value=context_for(user))
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, {'me': {'username': 'testuser'}})

    def test_me_anonymous(self):
        schema = graphene.Schema(query=Query)
        result = schema.execute(self.query, context_value=context_for())
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data, {'me': None})


# ========== createUser mutation tests ==========

class CreateUserTests(TestCase):
    def setUp(self):
        self.query = '''
          mutation CreateUserMutation($input: CreateUserInput!) {
            createUser(input: $input) {
              token
              user { username role }
            }
          }
        '''
        self.variables = {
            'input': {
                'username': 'kirk',
                'email': 'kirk@example.com',
                'password': 'abc123',
            }
        }
        self.schema = graphene.Schema(query=Query, mutation=Mutation)

    def test_create_user(self):
        """sucessfully create a user"""
        result = self.schema.execute(self.query, variable_values=self.variables)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.assertEqual(result.data['createUser']['user'], {'username': 'kirk', 'role': 'member'})
        # check that the user was created properly
        user = UserModel.objects.get(username='kirk')
        self.assertEqual(user.email, 'kirk@example.com')
        self.assertNotEqual(user.password, 'abc123')
        self.assertTrue(user.check_password('abc123'))
        # and that the token names them
        self.assertEqual(decode_token(result.data['createUser']['token']).id, user.pk)

    def test_create_user_duplicate_email(self):
        """should not be able to create two users with the same email"""
        result = self.schema.execute(self.query, variable_values=self.variables)
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        self.variables['input']['username'] = 'spock'
        result = self.schema.execute(self.query, variable_values=self.variables)
        self.assertIsNotNone(result.errors,
                             msg='Creating user with duplicate email should have failed')
        self.assertIsInstance(result.errors[0].original_error, ConflictError)
        self.assertIn('user with that email address already exists', repr(result.errors))
        self.assertEqual(result.data, {'createUser': None})

    def test_create_user_duplicate_username(self):
        create_test_user(username='kirk', email='other@example.com')
        result = self.schema.execute(self.query, variable_values=self.variables)
        self.assertIsNotNone(result.errors)
        self.assertIsInstance(result.errors[0].original_error, ConflictError)
        self.assertIn('user with that username already exists', repr(result.errors))

    def test_create_user_invalid_input(self):
        for key, value in (('email', 'not-an-email'), ('username', '   '), ('password', '')):
            variables = {'input': dict(self.variables['input'], **{key: value})}
            result = self.schema.execute(self.query, variable_values=variables)
            self.assertIsNotNone(result.errors, msg=key)
            self.assertIsInstance(result.errors[0].original_error, ValidationError)
        self.assertFalse(UserModel.objects.exists())


# ========== signinUser mutation tests ==========

class SigninUserTests(TestCase):
    def setUp(self):
        self.user = create_test_user(password='abc123')
        self.query = '''
          mutation SigninUserMutation($input: SigninUserInput!) {
            signinUser(input: $input) {
              token
              role
              user { username }
            }
          }
        '''
        self.schema = graphene.Schema(query=Query, mutation=Mutation)

    def signin(self, email, password):
        variables = {'input': {'email': email, 'password': password}}
        return self.schema.execute(self.query, variable_values=variables)

    def test_signin_user(self):
        """normal user sign-in"""
        result = self.signin(self.user.email, 'abc123')
        self.assertIsNone(result.errors, msg=format_graphql_errors(result.errors))
        token = result.data['signinUser'].pop('token')
        self.assertEqual(decode_token(token).id, self.user.pk)
        expected = {'signinUser': {'role': 'member', 'user': {'username': 'testuser'}}}
        self.assertEqual(result.data, expected, msg='\n'+repr(expected)+'\n'+repr(result.data))

    def test_signin_user_not_found(self):
        """unsuccessful sign-in: user not found"""
        result = self.signin('xxx' + self.user.email, 'irrelevant')
        self.assertIsNotNone(result.errors,
                             msg='Sign-in of user with unknown email should have failed')
        self.assertIsInstance(result.errors[0].original_error, AuthenticationError)
        self.assertIn('Invalid username or password', repr(result.errors))
        self.assertEqual(result.data, {'signinUser': None})

    def test_signin_user_bad_password(self):
        """unsuccessful sign-in: incorrect password"""
        result = self.signin(self.user.email, 'xxxabc123')
        self.assertIsNotNone(result.errors,
                             msg='Sign-in of user with incorrect password should have failed')
        self.assertIn('Invalid username or password', repr(result.errors))
        self.assertEqual(result.data, {'signinUser': None})


# ========== set_role command tests ==========

class SetRoleCommandTests(TestCase):
    def test_set_role(self):
        user = create_test_user()
        out = StringIO()
        call_command('set_role', user.email, 'curator', stdout=out)
        user.refresh_from_db()
        self.assertEqual(user.role, Role.CURATOR)
        self.assertIn('is now curator', out.getvalue())

    def test_set_role_unknown_user(self):
        with self.assertRaises(CommandError):
            call_command('set_role', 'nobody@example.com', 'admin', stdout=StringIO())
