# visit_core/views.py
from __future__ import annotations

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import viewsets
from rest_framework.exceptions import NotFound
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .actors import resolve_actor
from .filters import AuditLogFilter, VisitTestFilter
from .models import AuditLog, VisitTest
from .reference_cache import get_reference
from .serializers import AuditLogSerializer, RejectionRecordSerializer, VisitTestSerializer
from .workflows.exceptions import ActorRequiredError


def require_actor(request):
    """
    Resolved actor for the request, or ActorRequiredError (401).
    """
    actor = resolve_actor(getattr(request, "user", None))
    if actor is None:
        raise ActorRequiredError()
    return actor


# ===============================================================
# System
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "DIAG-LIMS"})


# ===============================================================
# Visit tests (READ-ONLY; mutations go through the workflow API)
# ===============================================================
@extend_schema_view(
    list=extend_schema(tags=["Visit tests"]),
    retrieve=extend_schema(tags=["Visit tests"]),
)
class VisitTestViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = VisitTestSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = VisitTestFilter
    ordering_fields = ["created_at", "updated_at", "collected_at", "approved_at", "id"]

    def get_queryset(self):
        return (
            VisitTest.objects.select_related("visit", "template")
            .prefetch_related("rejections")
            .order_by("-created_at", "-id")
        )


class VisitTestRejectionsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Visit tests"], responses=RejectionRecordSerializer(many=True))
    def get(self, request, pk: int):
        test = get_object_or_404(VisitTest, pk=pk)
        return Response(RejectionRecordSerializer(test.rejections.all(), many=True).data)


class VisitTestAuditView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Audit"], responses=AuditLogSerializer(many=True))
    def get(self, request, pk: int):
        test = get_object_or_404(VisitTest, pk=pk)
        qs = AuditLog.objects.filter(resource_type="visit_test", resource_id=test.pk).order_by(
            "created_at", "id"
        )
        return Response(AuditLogSerializer(qs, many=True).data)


# ===============================================================
# Audit logs (READ-ONLY)
# ===============================================================
@extend_schema_view(
    list=extend_schema(tags=["Audit"]),
    retrieve=extend_schema(tags=["Audit"]),
)
class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.all().order_by("-created_at", "-id")
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_class = AuditLogFilter


# ===============================================================
# Reference data (cached)
# ===============================================================
class ReferenceDataView(APIView):
    """
    GET /lims/reference/<key>/  (test-templates, antibiotics)

    ?refresh=1 bypasses the cache.
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Reference data"])
    def get(self, request, key: str):
        refresh = str(request.query_params.get("refresh", "")).lower() in {"1", "true", "yes"}
        try:
            data = get_reference(key, force_refresh=refresh)
        except KeyError:
            raise NotFound(f"Unknown reference data '{key}'.") from None
        return Response(data)
