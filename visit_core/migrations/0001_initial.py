from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("SAMPLE_COLLECTED", "Sample Collected"),
    ("REJECTED", "Rejected"),
    ("IN_PROGRESS", "In Progress"),
    ("AWAITING_APPROVAL", "Awaiting Approval"),
    ("APPROVED", "Approved"),
    ("PRINTED", "Printed"),
    ("COMPLETED", "Completed"),
    ("CANCELLED", "Cancelled"),
]

ROLE_CHOICES = [
    ("SUDO", "Sudo"),
    ("ADMIN", "Admin"),
    ("APPROVER", "Approver"),
    ("LAB", "Lab"),
    ("PHLEBOTOMY", "Phlebotomy"),
    ("RECEPTION", "Reception"),
    ("B2B_CLIENT", "B2B Client"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Antibiotic",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="TestTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("category", models.CharField(blank=True, db_index=True, max_length=100)),
                ("sample_type", models.CharField(blank=True, max_length=100)),
                (
                    "report_type",
                    models.CharField(
                        choices=[("standard", "Standard"), ("culture", "Culture & sensitivity")],
                        default="standard",
                        max_length=20,
                    ),
                ),
                (
                    "parameters",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text='{"fields": [{"name": "Hemoglobin", "type": "number", "unit": "g/dL"}, ...]}',
                    ),
                ),
                ("default_antibiotic_ids", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["code"]},
        ),
        migrations.CreateModel(
            name="Visit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("visit_code", models.CharField(max_length=50, unique=True)),
                ("patient_name", models.CharField(max_length=255)),
                ("ref_customer_id", models.PositiveIntegerField(blank=True, null=True)),
                ("due_amount", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="VisitTest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="PENDING",
                        editable=False,
                        max_length=32,
                    ),
                ),
                ("version", models.PositiveIntegerField(default=1, editable=False)),
                ("results", models.JSONField(blank=True, null=True)),
                ("culture_result", models.JSONField(blank=True, null=True)),
                ("collected_by", models.CharField(blank=True, max_length=150)),
                ("collected_at", models.DateTimeField(blank=True, null=True)),
                ("specimen_type", models.CharField(blank=True, max_length=100)),
                ("entered_by", models.CharField(blank=True, max_length=150)),
                ("entered_at", models.DateTimeField(blank=True, null=True)),
                ("approved_by", models.CharField(blank=True, max_length=150)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_count", models.PositiveIntegerField(default=0)),
                ("last_rejection_at", models.DateTimeField(blank=True, null=True)),
                ("cancel_reason", models.TextField(blank=True)),
                ("cancelled_by", models.CharField(blank=True, max_length=150)),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="visit_tests",
                        to="visit_core.testtemplate",
                    ),
                ),
                (
                    "visit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tests",
                        to="visit_core.visit",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["visit", "status"], name="visittest_visit_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "status__in",
                                [
                                    "PENDING",
                                    "SAMPLE_COLLECTED",
                                    "REJECTED",
                                    "IN_PROGRESS",
                                    "AWAITING_APPROVAL",
                                    "APPROVED",
                                    "PRINTED",
                                    "COMPLETED",
                                    "CANCELLED",
                                ],
                            )
                        ),
                        name="visittest_status_valid",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("results__isnull", True), ("culture_result__isnull", True), _connector="OR"),
                        name="visittest_single_payload",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("role", models.CharField(choices=ROLE_CHOICES, max_length=32)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lims_roles",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("user", "role")}},
        ),
        migrations.CreateModel(
            name="RejectionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[("SAMPLE", "Sample rejection"), ("RESULT", "Result rejection")],
                        max_length=16,
                    ),
                ),
                ("reason", models.TextField()),
                ("old_payload", models.JSONField(blank=True, null=True)),
                ("rejected_by_username", models.CharField(max_length=150)),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING_CORRECTION", "Pending correction"), ("RESOLVED", "Resolved")],
                        default="PENDING_CORRECTION",
                        max_length=32,
                    ),
                ),
                ("resolved_by_username", models.CharField(blank=True, max_length=150)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "rejected_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="visit_test_rejections",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="visit_test_rejections_resolved",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "visit_test",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rejections",
                        to="visit_core.visittest",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["visit_test", "kind", "status"], name="rejection_test_kind_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("actor_username", models.CharField(max_length=150)),
                ("actor_role", models.CharField(blank=True, max_length=32)),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("resource_type", models.CharField(default="visit_test", max_length=32)),
                ("resource_id", models.PositiveIntegerField(db_index=True)),
                ("details", models.TextField(blank=True)),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("transition_key", models.CharField(blank=True, max_length=128, null=True, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="visit_audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["resource_type", "resource_id"], name="audit_resource_idx"),
                    models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
                ],
            },
        ),
    ]
