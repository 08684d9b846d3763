# visit_core/models/audit.py

from django.conf import settings
from django.db import models


class AuditLog(models.Model):
    """
    Immutable audit trail: one row per mutating visit-test operation.

    transition_key identifies the transition (record, resulting version,
    action) so a retried write never produces a second row.
    """

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="visit_audit_logs",
    )
    actor_username = models.CharField(max_length=150)
    actor_role = models.CharField(max_length=32, blank=True)

    action = models.CharField(max_length=64, db_index=True)
    resource_type = models.CharField(max_length=32, default="visit_test")
    resource_id = models.PositiveIntegerField(db_index=True)

    details = models.TextField(blank=True)
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)

    transition_key = models.CharField(max_length=128, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
            models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
        ]

    def __str__(self):
        return f"{self.created_at} - {self.actor_username} - {self.action}"
