# link-aggregator -- users/schema.py
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

import graphene
from django.core import exceptions as django_exceptions
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from graphene import relay
from graphene.relay import Node
from graphene_django import DjangoObjectType

from aggregator.errors import (AuthenticationError, ConflictError, ValidationError,
                               storage_errors)
from users.models import UserModel
from users.tokens import create_token, get_principal_from_auth_token


logger = logging.getLogger(__name__)


class User(DjangoObjectType):
    # password and email stay out of the schema
    class Meta:
        model = UserModel
        fields = ('id', 'username', 'role', 'created_at')
        interfaces = (Node, )
        convert_choices_to_enum = False


class Query(object):
    me = graphene.Field(User)

    def resolve_me(self, info):
        """The logged-in user, or null for anonymous requests."""
        principal = get_principal_from_auth_token(info.context)
        if principal is None:
            return None
        return UserModel.objects.filter(pk=principal.id).first()


class CreateUser(relay.ClientIDMutation):
    # Registration. The password is hashed with Django's configured PASSWORD_HASHERS before it is
    # stored, and the new user is signed in straight away.
    # mutation CreateUserMutation($input: CreateUserInput!) {
    #   createUser(input: $input) {
    #     token
    #     user { id username role }
    #   }
    # }
    # example variables:
    #   input: {
    #     username: "kirk",
    #     email: "kirk@example.com",
    #     password: "abc123",
    #     clientMutationId: "",
    #   }

    token = graphene.String()
    user = graphene.Field(User)

    class Input:
        username = graphene.String(required=True)
        email = graphene.String(required=True)
        password = graphene.String(required=True)

    @classmethod
    def mutate_and_get_payload(cls, root, info, username, email, password,
                               client_mutation_id=None):
        username = username.strip()
        email = email.strip()
        if not username:
            raise ValidationError('A username is required.')
        if not password:
            raise ValidationError('A password is required.')
        try:
            validate_email(email)
        except django_exceptions.ValidationError:
            raise ValidationError('"{}" is not a valid email address.'.format(email))
        with storage_errors():
            if UserModel.objects.filter(email=email).exists():
                raise ConflictError('A user with that email address already exists!')
            if UserModel.objects.filter(username=username).exists():
                raise ConflictError('A user with that username already exists!')
            user = UserModel(username=username, email=email)
            user.set_password(password)
            try:
                with transaction.atomic():
                    user.save()
            except IntegrityError:
                raise ConflictError('A user with that username or email address already exists!')
        logger.info('registered user %s', user.pk)
        return CreateUser(token=create_token(user), user=user)


class SigninUser(relay.ClientIDMutation):
    # mutation SigninUserMutation($input: SigninUserInput!) {
    #   signinUser(input: $input) {
    #     token
    #     role
    #     user { id username }
    #   }
    # }
    # example variables: input: { email: "foo@bar.com", password: "abc123" }

    token = graphene.String()
    role = graphene.String()
    user = graphene.Field(User)

    class Input:
        email = graphene.String(required=True)
        password = graphene.String(required=True)

    @classmethod
    def mutate_and_get_payload(cls, root, info, email, password, client_mutation_id=None):
        with storage_errors():
            user = UserModel.objects.filter(email=email.strip()).first()
        # one message for unknown email and wrong password
        if user is None or not user.check_password(password):
            raise AuthenticationError('Invalid username or password!')
        return SigninUser(token=create_token(user), role=user.role, user=user)


class Mutation(object):
    create_user = CreateUser.Field()
    signin_user = SigninUser.Field()
