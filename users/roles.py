from django.db import models


class Role(models.TextChoices):
    MEMBER = 'member', 'Member'
    CURATOR = 'curator', 'Curator'
    ADMIN = 'admin', 'Admin'


class Capability(models.TextChoices):
    SUBMIT = 'submit', 'Submit links'
    VOTE = 'vote', 'Vote on links'
    MODERATE = 'moderate', 'Approve or reject links'


CAPABILITIES = {
    Role.MEMBER: frozenset({Capability.SUBMIT, Capability.VOTE}),
    Role.CURATOR: frozenset({Capability.SUBMIT, Capability.VOTE, Capability.MODERATE}),
    Role.ADMIN: frozenset({Capability.SUBMIT, Capability.VOTE, Capability.MODERATE}),
}


def has_capability(role, capability):
    """Unknown roles have no capabilities."""
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in CAPABILITIES[role]
