from django.conf import settings
from django.db import models
from django.utils import timezone


class Log(models.Model):
    """
    Append-only audit record of a mutating action. Rows are written by
    auditlog.services.audit.record and never updated or deleted.
    """
    id = models.BigAutoField(primary_key=True)
    action = models.CharField(max_length=100)          # e.g. "CREATE_TASK"
    description = models.TextField(blank=True, null=True)
    entity_type = models.CharField(max_length=50)      # e.g. "comment", "project"
    entity_id = models.CharField(max_length=120)
    old_value = models.JSONField(blank=True, null=True)
    new_value = models.JSONField(blank=True, null=True)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="audit_logs",
    )
    ip_address = models.GenericIPAddressField(blank=True, null=True)  # IPv4 or IPv6
    user_agent = models.CharField(max_length=500, blank=True, null=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-timestamp", "-id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="log_entity_idx"),
            models.Index(fields=["performed_by"], name="log_actor_idx"),
            models.Index(fields=["action"], name="log_action_idx"),
            models.Index(fields=["timestamp"], name="log_timestamp_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}#{self.entity_id}"
