import logging

import graphene

import links.schema
import users.schema
from aggregator.errors import AggregatorError


logger = logging.getLogger(__name__)


class Query(links.schema.Query, users.schema.Query, graphene.ObjectType):
    pass


class Mutation(links.schema.Mutation, users.schema.Mutation, graphene.ObjectType):
    pass


schema = graphene.Schema(query=Query, mutation=Mutation)


class ErrorLoggingMiddleware(object):
    """Log resolver exceptions that aren't AggregatorErrors.

    The executor turns every exception into an entry in the response's 'errors' list, which is
    right for domain errors but hides bugs, so anything unexpected gets its traceback logged here.
    """
    def resolve(self, next, root, info, **args):
        try:
            return next(root, info, **args)
        except AggregatorError:
            raise
        except Exception:
            logger.exception('unexpected error resolving %s.%s',
                             info.parent_type.name, info.field_name)
            raise
