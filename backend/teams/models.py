from django.conf import settings
from django.core.validators import MinLengthValidator
from django.db import models
from django.utils import timezone

from common.models import BaseModel


class TeamStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    ARCHIVED = "archived", "Archived"


class InvitationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    DECLINED = "declined", "Declined"
    CANCELLED = "cancelled", "Cancelled"


TERMINAL_STATUSES = (InvitationStatus.ACCEPTED, InvitationStatus.DECLINED, InvitationStatus.CANCELLED)
DEFAULT_MEMBER_ROLE = "member"


class Team(BaseModel):
    name = models.CharField(max_length=200, validators=[MinLengthValidator(2)])
    description = models.TextField(blank=True, default="")
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="managed_teams"
    )
    status = models.CharField(max_length=20, choices=TeamStatus.choices, default=TeamStatus.ACTIVE, db_index=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.name


class TeamMember(BaseModel):
    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="team_memberships")
    role = models.CharField(max_length=50, default=DEFAULT_MEMBER_ROLE)
    joined_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = ("team", "user")
        ordering = ["joined_at"]

    def __str__(self):
        return f"{self.user_id} in {self.team_id}"


class TeamInvitation(BaseModel):
    """
    pending -> accepted | declined | cancelled. Resolved invitations are kept
    as history until the same (team, user) pair is invited again.
    """
    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name="invitations")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="team_invitations"
    )
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="sent_team_invitations"
    )
    role = models.CharField(max_length=50, default=DEFAULT_MEMBER_ROLE)
    status = models.CharField(
        max_length=20, choices=InvitationStatus.choices, default=InvitationStatus.PENDING
    )
    message = models.TextField(blank=True, default="")
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["team", "user"], name="invitation_pair_idx"),
            models.Index(fields=["status"], name="invitation_status_idx"),
        ]

    def __str__(self):
        return f"{self.team_id} -> {self.user_id} ({self.status})"
