# link-aggregator -- links/schema.py
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

import django_filters
from django.db.models import QuerySet

import graphene
from graphene import ObjectType, relay
from graphene.relay import Node
from graphene_django import DjangoObjectType

from aggregator.errors import ForbiddenError, ValidationError, storage_errors
from aggregator.utils import pk_from_global_id
from links.models import LinkModel, LinkStatus, VoteModel
from links.services import FeedRanker, ModerationGate, SubmissionHandler, VotingEngine
from users.roles import Capability, has_capability
from users.tokens import get_principal_from_auth_token, require_principal


# Resolvers here only translate between GraphQL and the components in links.services: decode the
# caller and the Relay IDs, call the component, wrap the result. Domain errors raised by the
# components propagate untouched, so their 'code' reaches the client in the error extensions.


def row_count(iterable):
    """Size of a connection's result: a COUNT query for a QuerySet, len() for a list."""
    if isinstance(iterable, QuerySet):
        return iterable.count()
    return len(iterable)


# ========== Vote ==========

class Vote(DjangoObjectType):
    class Meta:
        model = VoteModel
        fields = ('id', 'user', 'link', 'created_at')
        interfaces = (relay.Node, )
        # We are going to provide a custom Connection, so we need to tell graphene-django not to
        # create one.
        use_connection = False


class IdInput(graphene.InputObjectType):
    id = graphene.ID(required=True)


class VoteFilter(graphene.InputObjectType):
    """The input object for filtered allVotes queries. Filtering on both user and link is how a
    client asks "has this user already voted for this link?"
    """
    link = graphene.InputField(IdInput)
    user = graphene.InputField(IdInput)


class VotesFilterSet(django_filters.FilterSet):
    class Meta:
        model = VoteModel
        fields = ['link', 'user']


class VoteConnection(relay.Connection):
    """A custom Connection for queries on Vote, complete with custom field 'count'."""
    class Meta:
        node = Vote

    count = graphene.Int()

    @staticmethod
    def get_all_votes_input_fields():
        return {
            'filter': graphene.Argument(VoteFilter),
        }

    @staticmethod
    def resolve_all_votes(_, info, **args):
        """Resolve a field returning a (possibly filtered view of) all Votes."""
        qs = VoteModel.objects.all()
        filter = args.get('filter', None)
        if filter:
            # collapse e.g.:
            #     { 'link': { 'id': '<global_id>' } }  # what graphene provides
            # to:
            #     { 'link': '<primary_key>' }  # what our FilterSet expects
            data = {}
            for key, type_name in (('link', 'Link'), ('user', 'User')):
                field = filter.get(key, None)
                if field and field.get('id', None):
                    data[key] = pk_from_global_id(field['id'], type_name)
            filterset = VotesFilterSet(data=data, queryset=qs)
            if not filterset.is_valid():
                # an ID for a row that doesn't exist: nothing can match it
                return qs.none()
            qs = filterset.qs
        return qs.order_by('pk')

    def resolve_count(self, info, **args):
        # self.iterable is whatever the connection's resolver returned
        return row_count(self.iterable)

    @staticmethod
    def resolve_votes(parent, info, **args):
        """Resolve the 'votes' field on Link."""
        return VoteModel.objects.filter(link_id=parent.pk).order_by('pk')


# ========== Link ==========

class Link(DjangoObjectType):
    class Meta:
        model = LinkModel
        fields = ('id', 'url', 'description', 'status', 'score', 'created_at', 'owner')
        interfaces = (Node, )
        use_connection = False  # a custom Connection will be provided
        convert_choices_to_enum = False

    votes = relay.ConnectionField(
        VoteConnection,
        resolver=VoteConnection.resolve_votes,
    )

    @classmethod
    def get_node(cls, info, id):
        """Look up a link by Relay ID. Pending and rejected links resolve to null except for their
        owner and for moderators.
        """
        with storage_errors():
            link = super().get_node(info, id)
        if link is None or link.status == LinkStatus.APPROVED:
            return link
        principal = get_principal_from_auth_token(info.context)
        if principal is None:
            return None
        if principal.id == link.owner_id or has_capability(principal.role, Capability.MODERATE):
            return link
        return None


class LinkConnection(relay.Connection):
    """A custom Connection for queries on Link."""
    class Meta:
        node = Link

    count = graphene.Int()

    @staticmethod
    def resolve_feed(_, info, **args):
        return FeedRanker().list_approved()

    def resolve_count(self, info, **args):
        return row_count(self.iterable)


def link_pk(link_id):
    return pk_from_global_id(link_id, 'Link')


class CreateLink(relay.ClientIDMutation):
    # mutation CreateLinkMutation($input: CreateLinkInput!) {
    #   createLink(input: $input) {
    #     link { id url status }
    #   }
    # }
    # example variables:
    #   input {
    #       url: "https://example.com/a",
    #       description: "An example",
    #       clientMutationId: "",
    #   }

    link = graphene.Field(Link, required=True)

    class Input:
        url = graphene.String(required=True)
        description = graphene.String()

    @classmethod
    def mutate_and_get_payload(cls, root, info, url, description=None, client_mutation_id=None):
        principal = require_principal(info.context)
        if not has_capability(principal.role, Capability.SUBMIT):
            raise ForbiddenError('You may not submit links.')
        link = SubmissionHandler().submit(url, principal.id, description=description)
        return CreateLink(link=link)


class ApproveLink(relay.ClientIDMutation):
    # mutation ApproveLinkMutation($input: ApproveLinkInput!) {
    #   approveLink(input: $input) {
    #     link { id status }
    #   }
    # }

    link = graphene.Field(Link, required=True)

    class Input:
        link_id = graphene.ID(required=True)

    @classmethod
    def mutate_and_get_payload(cls, root, info, link_id, client_mutation_id=None):
        principal = require_principal(info.context)
        link = ModerationGate().approve(link_pk(link_id), principal.role)
        return ApproveLink(link=link)


class RejectLink(relay.ClientIDMutation):
    link = graphene.Field(Link, required=True)

    class Input:
        link_id = graphene.ID(required=True)

    @classmethod
    def mutate_and_get_payload(cls, root, info, link_id, client_mutation_id=None):
        principal = require_principal(info.context)
        link = ModerationGate().reject(link_pk(link_id), principal.role)
        return RejectLink(link=link)


class CreateVote(relay.ClientIDMutation):
    # mutation CreateVoteMutation($input: CreateVoteInput!) {
    #   createVote(input: $input) {
    #     score
    #     link {
    #       id
    #       votes { count }
    #     }
    #   }
    # }
    # example variables:
    #   input {
    #     linkId: 'TGluazoy',
    #     clientMutationId: ''
    #   }

    link = graphene.Field(Link, required=True)
    score = graphene.Int(required=True)

    class Input:
        user_id = graphene.ID()
        link_id = graphene.ID(required=True)

    @classmethod
    def mutate_and_get_payload(cls, root, info, link_id, user_id=None, client_mutation_id=None):
        principal = require_principal(info.context)
        if not has_capability(principal.role, Capability.VOTE):
            raise ForbiddenError('You may not vote.')
        if user_id:
            # the tutorial front end sends the voter's id too; it has to be the caller's own
            try:
                supplied = pk_from_global_id(user_id, 'User')
            except ValidationError:
                supplied = None
            if supplied != principal.id:
                raise ForbiddenError('Supplied user id does not match logged-in user!')
        pk = link_pk(link_id)
        score = VotingEngine().cast_vote(pk, principal.id)
        with storage_errors():
            link = LinkModel.objects.get(pk=pk)
        return CreateVote(link=link, score=score)


# ========== schema structure ==========

# The front end expects a 'viewer' field wrapping the top-level queries. It is just a grouping
# pattern; there's no Django involved at this level.

class Viewer(ObjectType):
    class Meta:
        interfaces = (Node, )

    feed = relay.ConnectionField(
        LinkConnection,
        resolver=LinkConnection.resolve_feed,
    )

    all_votes = relay.ConnectionField(
        VoteConnection,
        resolver=VoteConnection.resolve_all_votes,
        **VoteConnection.get_all_votes_input_fields()
    )


class Query(object):
    viewer = graphene.Field(Viewer)
    node = Node.Field()

    def resolve_viewer(self, info):
        return Viewer()


class Mutation(object):
    create_link = CreateLink.Field()
    approve_link = ApproveLink.Field()
    reject_link = RejectLink.Field()
    create_vote = CreateVote.Field()
