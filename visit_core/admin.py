# visit_core/admin.py

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    Antibiotic,
    AuditLog,
    RejectionRecord,
    TestTemplate,
    UserRole,
    Visit,
    VisitTest,
)


# =============================================================
# Audit log (READ-ONLY)
# =============================================================

@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "actor_username", "actor_role", "action", "resource_id")
    list_filter = ("action", "actor_role")
    search_fields = ("actor_username", "details", "resource_id")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Rejections (READ-ONLY)
# =============================================================

@admin.register(RejectionRecord)
class RejectionRecordAdmin(admin.ModelAdmin):
    list_display = ("visit_test", "kind", "status_badge", "rejected_by_username", "created_at", "resolved_at")
    list_filter = ("kind", "status")
    search_fields = ("reason", "rejected_by_username", "visit_test__visit__visit_code")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in RejectionRecord._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def status_badge(self, obj):
        if obj.status == RejectionRecord.STATUS_RESOLVED:
            return format_html('<span style="color:#2e7d32;font-weight:bold;">RESOLVED</span>')
        return format_html('<span style="color:#ed6c02;font-weight:bold;">PENDING</span>')

    status_badge.short_description = "Status"


# =============================================================
# Visit tests (status is workflow-owned)
# =============================================================

@admin.register(VisitTest)
class VisitTestAdmin(admin.ModelAdmin):
    list_display = ("id", "visit", "template", "status", "version", "rejection_count", "updated_at")
    list_filter = ("status", "template__category")
    search_fields = ("visit__visit_code", "visit__patient_name", "template__code")
    readonly_fields = (
        "status",
        "version",
        "results",
        "culture_result",
        "collected_by",
        "collected_at",
        "entered_by",
        "entered_at",
        "approved_by",
        "approved_at",
        "rejection_count",
        "last_rejection_at",
        "cancel_reason",
        "cancelled_by",
    )

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Reference data
# =============================================================

@admin.register(TestTemplate)
class TestTemplateAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "category", "report_type", "is_active")
    list_filter = ("category", "report_type", "is_active")
    search_fields = ("code", "name")


@admin.register(Antibiotic)
class AntibioticAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    search_fields = ("code", "name")


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ("visit_code", "patient_name", "due_amount", "created_at")
    search_fields = ("visit_code", "patient_name")


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "created_at")
    list_filter = ("role",)
    search_fields = ("user__username",)
