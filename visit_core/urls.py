# visit_core/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AuditLogViewSet,
    HealthCheckView,
    ReferenceDataView,
    VisitTestAuditView,
    VisitTestRejectionsView,
    VisitTestViewSet,
)
from .views_workflow_api import (
    VisitPrintView,
    VisitTestAllowedView,
    VisitTestCommandView,
    WorkflowDefinitionView,
    WorkQueueView,
)

app_name = "visit_core"

# -------------------------------------------------
# Router (read-only APIs)
# -------------------------------------------------
router = DefaultRouter()
router.register(r"visit-tests", VisitTestViewSet, basename="visittest")
router.register(r"audit-logs", AuditLogViewSet, basename="auditlog")


urlpatterns = [
    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health"),

    # ============================================================
    # Workflow (visit tests)
    # ============================================================
    path("workflows/visit-test/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("visit-tests/<int:pk>/allowed/", VisitTestAllowedView.as_view(), name="visittest-allowed"),
    path("visit-tests/<int:pk>/rejections/", VisitTestRejectionsView.as_view(), name="visittest-rejections"),
    path("visit-tests/<int:pk>/audit/", VisitTestAuditView.as_view(), name="visittest-audit"),
    path(
        "visit-tests/<int:pk>/<slug:command>/",
        VisitTestCommandView.as_view(),
        name="visittest-command",
    ),
    path("visits/<int:pk>/print/", VisitPrintView.as_view(), name="visit-print"),

    # ============================================================
    # Queues and reference data
    # ============================================================
    path("queues/<slug:name>/", WorkQueueView.as_view(), name="queue"),
    path("reference/<slug:key>/", ReferenceDataView.as_view(), name="reference"),

    # ============================================================
    # Read-only CRUD
    # ============================================================
    path("", include(router.urls)),
]
