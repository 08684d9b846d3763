# visit_core/models/core.py

from django.conf import settings
from django.db import models
from django.db.models import Q

from visit_core.workflows import PENDING, ROLES, VISIT_TEST_STATES
from visit_core.workflows.guards import WorkflowWriteGuardMixin
from visit_core.workflows.payloads import REPORT_CULTURE, REPORT_STANDARD


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Reference data: test catalog
# ============================================================
class TestTemplate(TimeStampedModel):
    """Catalog entry defining a test's result schema, sample type and category."""

    REPORT_TYPES = [
        (REPORT_STANDARD, "Standard"),
        (REPORT_CULTURE, "Culture & sensitivity"),
    ]

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=100, blank=True, db_index=True)
    sample_type = models.CharField(max_length=100, blank=True)
    report_type = models.CharField(max_length=20, choices=REPORT_TYPES, default=REPORT_STANDARD)
    parameters = models.JSONField(
        default=dict,
        blank=True,
        help_text='{"fields": [{"name": "Hemoglobin", "type": "number", "unit": "g/dL"}, ...]}',
    )
    default_antibiotic_ids = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)

    __test__ = False  # not a pytest class

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Antibiotic(TimeStampedModel):
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50, unique=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


# ============================================================
# Visit (display context only; owned by the visit/billing collaborators)
# ============================================================
class Visit(TimeStampedModel):
    visit_code = models.CharField(max_length=50, unique=True)
    patient_name = models.CharField(max_length=255)
    ref_customer_id = models.PositiveIntegerField(null=True, blank=True)
    due_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.visit_code


# ============================================================
# Visit test (unit of the lifecycle engine)
# ============================================================
class VisitTest(WorkflowWriteGuardMixin, TimeStampedModel):
    WORKFLOW_FIELDS = ("status", "version")

    STATUS_CHOICES = [(s, s.replace("_", " ").title()) for s in VISIT_TEST_STATES]

    visit = models.ForeignKey(Visit, on_delete=models.PROTECT, related_name="tests")
    template = models.ForeignKey(TestTemplate, on_delete=models.PROTECT, related_name="visit_tests")

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=PENDING,
        db_index=True,
        editable=False,
    )

    # Optimistic-concurrency token, bumped by every mutation
    version = models.PositiveIntegerField(default=1, editable=False)

    results = models.JSONField(null=True, blank=True)
    culture_result = models.JSONField(null=True, blank=True)

    collected_by = models.CharField(max_length=150, blank=True)
    collected_at = models.DateTimeField(null=True, blank=True)
    specimen_type = models.CharField(max_length=100, blank=True)

    entered_by = models.CharField(max_length=150, blank=True)
    entered_at = models.DateTimeField(null=True, blank=True)

    approved_by = models.CharField(max_length=150, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    rejection_count = models.PositiveIntegerField(default=0)
    last_rejection_at = models.DateTimeField(null=True, blank=True)

    cancel_reason = models.TextField(blank=True)
    cancelled_by = models.CharField(max_length=150, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["visit", "status"], name="visittest_visit_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                name="visittest_status_valid",
                condition=Q(status__in=VISIT_TEST_STATES),
            ),
            models.CheckConstraint(
                name="visittest_single_payload",
                condition=Q(results__isnull=True) | Q(culture_result__isnull=True),
            ),
        ]

    def __str__(self):
        return f"{self.visit.visit_code}:{self.template.code} [{self.status}]"


# ============================================================
# User Roles
# ============================================================
class UserRole(TimeStampedModel):
    ROLE_CHOICES = [(r, r.replace("_", " ").title()) for r in ROLES]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lims_roles",
    )
    role = models.CharField(max_length=32, choices=ROLE_CHOICES)

    class Meta:
        unique_together = ("user", "role")

    def __str__(self):
        return f"{self.user.username} - {self.role}"
