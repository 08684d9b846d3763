from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework import serializers

from .models import (
    Antibiotic,
    AuditLog,
    RejectionRecord,
    TestTemplate,
    VisitTest,
)


# ===============================================================
# Reference data
# ===============================================================

class TestTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = TestTemplate
        fields = (
            "id",
            "code",
            "name",
            "category",
            "sample_type",
            "report_type",
            "parameters",
            "default_antibiotic_ids",
            "is_active",
        )
        read_only_fields = fields


class AntibioticSerializer(serializers.ModelSerializer):
    class Meta:
        model = Antibiotic
        fields = ("id", "name", "code", "is_active")
        read_only_fields = fields


# ===============================================================
# Visit tests
# ===============================================================

class VisitTestSerializer(serializers.ModelSerializer):
    """
    Canonical visit-test record. Every mutation endpoint returns this shape.
    """

    visit_code = serializers.CharField(source="visit.visit_code", read_only=True)
    patient_name = serializers.CharField(source="visit.patient_name", read_only=True)
    template_code = serializers.CharField(source="template.code", read_only=True)
    template_name = serializers.CharField(source="template.name", read_only=True)
    category = serializers.CharField(source="template.category", read_only=True)
    report_type = serializers.CharField(source="template.report_type", read_only=True)
    rejection_kind = serializers.SerializerMethodField()

    class Meta:
        model = VisitTest
        fields = (
            "id",
            "visit",
            "visit_code",
            "patient_name",
            "template",
            "template_code",
            "template_name",
            "category",
            "report_type",
            "status",
            "version",
            "results",
            "culture_result",
            "collected_by",
            "collected_at",
            "specimen_type",
            "entered_by",
            "entered_at",
            "approved_by",
            "approved_at",
            "rejection_count",
            "last_rejection_at",
            "rejection_kind",
            "cancel_reason",
            "cancelled_by",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_rejection_kind(self, obj) -> Optional[str]:
        # rejections are ordered newest first; .all() reuses a prefetch
        latest = next(iter(obj.rejections.all()), None)
        return latest.kind.lower() if latest else None


class RejectionRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = RejectionRecord
        fields = (
            "id",
            "visit_test",
            "kind",
            "reason",
            "old_payload",
            "rejected_by_username",
            "status",
            "resolved_by_username",
            "resolved_at",
            "created_at",
        )
        read_only_fields = fields


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = (
            "id",
            "created_at",
            "actor",
            "actor_username",
            "actor_role",
            "action",
            "resource_type",
            "resource_id",
            "details",
            "old_value",
            "new_value",
            "transition_key",
        )
        read_only_fields = fields


# ===============================================================
# Command inputs
# ===============================================================
# Text fields are accepted blank here; the executor owns the
# domain messages for missing reasons and specimen types.

class CommandInputSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    def command_kwargs(self) -> Dict[str, Any]:
        return {"expected_version": self.validated_data.get("expected_version")}


class CollectSampleInputSerializer(CommandInputSerializer):
    specimen_type = serializers.CharField(required=False, allow_blank=True, default="")

    def command_kwargs(self) -> Dict[str, Any]:
        kwargs = super().command_kwargs()
        kwargs["specimen_type"] = self.validated_data["specimen_type"]
        return kwargs


class ReasonInputSerializer(CommandInputSerializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def command_kwargs(self) -> Dict[str, Any]:
        kwargs = super().command_kwargs()
        kwargs["reason"] = self.validated_data["reason"]
        return kwargs


class ResultPayloadInputSerializer(CommandInputSerializer):
    results = serializers.JSONField(required=False, allow_null=True)
    culture_result = serializers.JSONField(required=False, allow_null=True)

    def command_kwargs(self) -> Dict[str, Any]:
        kwargs = super().command_kwargs()
        kwargs["payload"] = {
            key: self.validated_data[key]
            for key in ("results", "culture_result")
            if key in self.validated_data
        }
        return kwargs


class EditResultInputSerializer(ResultPayloadInputSerializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")

    def command_kwargs(self) -> Dict[str, Any]:
        kwargs = super().command_kwargs()
        kwargs["reason"] = self.validated_data["reason"]
        return kwargs
