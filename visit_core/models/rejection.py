# visit_core/models/rejection.py

from django.conf import settings
from django.db import models


class RejectionRecord(models.Model):
    """
    Rejection history for a visit test.

    SAMPLE: the physical specimen was judged unusable; resolved on recollection.
    RESULT: the approver sent entered values back; resolved on re-submission.
    """

    KIND_SAMPLE = "SAMPLE"
    KIND_RESULT = "RESULT"
    KIND_CHOICES = (
        (KIND_SAMPLE, "Sample rejection"),
        (KIND_RESULT, "Result rejection"),
    )

    STATUS_PENDING = "PENDING_CORRECTION"
    STATUS_RESOLVED = "RESOLVED"
    STATUS_CHOICES = (
        (STATUS_PENDING, "Pending correction"),
        (STATUS_RESOLVED, "Resolved"),
    )

    visit_test = models.ForeignKey(
        "visit_core.VisitTest",
        on_delete=models.PROTECT,
        related_name="rejections",
    )
    kind = models.CharField(max_length=16, choices=KIND_CHOICES)
    reason = models.TextField()
    old_payload = models.JSONField(null=True, blank=True)

    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="visit_test_rejections",
    )
    rejected_by_username = models.CharField(max_length=150)

    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_PENDING)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="visit_test_rejections_resolved",
    )
    resolved_by_username = models.CharField(max_length=150, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["visit_test", "kind", "status"], name="rejection_test_kind_idx"),
        ]

    def __str__(self):
        return f"{self.kind} rejection of test {self.visit_test_id}: {self.status}"
