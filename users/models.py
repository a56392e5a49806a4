from django.contrib.auth.hashers import check_password, make_password
from django.db import models

from users.roles import Role


# A small user model rather than django.contrib.auth's: the service authenticates with
# bearer tokens only, and needs a role and an upvote set more than it needs groups and permissions.

class UserModel(models.Model):
    username = models.CharField(max_length=150, unique=True)
    email = models.EmailField(unique=True)
    password = models.CharField(max_length=128)  # a django.contrib.auth.hashers hash, never plaintext
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.MEMBER)
    created_at = models.DateTimeField(auto_now_add=True)
    # Each VoteModel row is one member of this set; its unique (user, link) constraint is what
    # makes "add if absent" atomic.
    upvoted_links = models.ManyToManyField(
        'links.LinkModel',
        through='links.VoteModel',
        related_name='voters',
    )

    def set_password(self, raw_password):
        self.password = make_password(raw_password)

    def check_password(self, raw_password):
        return check_password(raw_password, self.password)

    def __str__(self):
        return self.username
