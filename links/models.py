from django.db import models
from django.db.models import F


class LinkStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'


class LinkManager(models.Manager):
    def approved(self):
        return self.filter(status=LinkStatus.APPROVED)

    def ranked(self):
        """Approved links, highest score first, newest first among equal scores."""
        return self.approved().select_related('owner').order_by('-score', '-created_at', '-pk')

    def transition(self, pk, from_status, to_status):
        """Compare-and-set the status. Returns True if this call made the change."""
        return self.filter(pk=pk, status=from_status).update(status=to_status) == 1

    def increment_score(self, pk):
        return self.filter(pk=pk).update(score=F('score') + 1) == 1


class LinkModel(models.Model):
    url = models.URLField(max_length=2048, unique=True)
    description = models.TextField(blank=True, default='')
    owner = models.ForeignKey('users.UserModel', on_delete=models.PROTECT, related_name='links')
    status = models.CharField(max_length=16, choices=LinkStatus.choices,
                              default=LinkStatus.PENDING)
    score = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = LinkManager()

    class Meta:
        indexes = [
            models.Index(fields=['status', '-score', '-created_at'], name='link_feed_idx'),
        ]

    def __str__(self):
        return self.url


class VoteModel(models.Model):
    user = models.ForeignKey('users.UserModel', on_delete=models.CASCADE, related_name='votes')
    link = models.ForeignKey('links.LinkModel', on_delete=models.CASCADE, related_name='votes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'link'], name='one_vote_per_user_per_link'),
        ]
