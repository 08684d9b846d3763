# visit_core/views_workflow_api.py

from __future__ import annotations

from typing import Dict, Tuple, Type

from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from visit_core.models import Visit, VisitTest
from visit_core.selectors import queue_sections
from visit_core.serializers import (
    CollectSampleInputSerializer,
    CommandInputSerializer,
    EditResultInputSerializer,
    ReasonInputSerializer,
    ResultPayloadInputSerializer,
    VisitTestSerializer,
)
from visit_core.views import require_actor
from visit_core.workflows import allowed_actions, workflow_definition
from visit_core.workflows.executor import OPERATIONS, mark_visit_printed


# =============================================================
# Command registry: URL segment -> (operation, input serializer)
# =============================================================

COMMANDS: Dict[str, Tuple[str, Type[CommandInputSerializer]]] = {
    "collect-sample": ("collect_sample", CollectSampleInputSerializer),
    "reject-sample": ("reject_sample", ReasonInputSerializer),
    "submit-results": ("submit_results", ResultPayloadInputSerializer),
    "approve": ("approve_result", CommandInputSerializer),
    "reject-result": ("reject_result", ReasonInputSerializer),
    "edit-result": ("edit_result", EditResultInputSerializer),
    "print": ("mark_printed", CommandInputSerializer),
    "cancel": ("cancel_test", ReasonInputSerializer),
}


# =============================================================
# API: Execute a visit-test command (AUTHORITATIVE)
# =============================================================

class VisitTestCommandView(APIView):
    """
    POST /lims/visit-tests/<pk>/<command>/

    Body depends on the command:
        collect-sample   {"specimen_type": "Blood"}
        reject-sample    {"reason": "..."}
        submit-results   {"results": {...}} or {"culture_result": {...}}
        reject-result    {"reason": "..."}
        edit-result      {"results"|"culture_result": ..., "reason": "..."}
        cancel           {"reason": "..."}
    Every body may carry "expected_version".

    Returns the canonical record. This is the only API entry point that
    mutates visit-test state.
    """
    # Auth is enforced by require_actor: a missing session is a 401 envelope.
    permission_classes = [AllowAny]

    @extend_schema(tags=["Workflows"], request=None, responses=VisitTestSerializer)
    def post(self, request, pk: int, command: str):
        try:
            operation, input_class = COMMANDS[command]
        except KeyError:
            raise NotFound(f"Unknown command '{command}'.") from None

        actor = require_actor(request)

        serializer = input_class(data=request.data or {})
        serializer.is_valid(raise_exception=True)

        instance = OPERATIONS[operation](pk, actor=actor, **serializer.command_kwargs())
        return Response(VisitTestSerializer(instance).data)


class VisitPrintView(APIView):
    """
    POST /lims/visits/<pk>/print/

    Marks every approved test of the visit as printed.
    Per-test outcomes are returned; one stale test does not block the rest.
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Workflows"], request=None)
    def post(self, request, pk: int):
        actor = require_actor(request)
        visit = get_object_or_404(Visit, pk=pk)
        outcome = mark_visit_printed(visit.pk, actor)
        return Response({"visit": visit.pk, "visit_code": visit.visit_code, **outcome})


# =============================================================
# API: Allowed actions (role-aware)
# =============================================================

class VisitTestAllowedView(APIView):
    """
    GET /lims/visit-tests/<pk>/allowed/
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Workflows"])
    def get(self, request, pk: int):
        actor = require_actor(request)
        test = get_object_or_404(VisitTest, pk=pk)
        return Response(
            {
                "object_id": test.pk,
                "current": test.status,
                "version": test.version,
                "role": actor.role,
                "roles": sorted(actor.held_roles),
                "allowed": allowed_actions(test.status, actor.held_roles),
            }
        )


class WorkflowDefinitionView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["Workflows"])
    def get(self, request):
        return Response(workflow_definition())


# =============================================================
# API: Work queues
# =============================================================

class WorkQueueView(APIView):
    """
    GET /lims/queues/<name>/?visit=<id>&since=YYYY-MM-DD
    """
    permission_classes = [AllowAny]

    @extend_schema(tags=["Queues"])
    def get(self, request, name: str):
        require_actor(request)

        visit_id = request.query_params.get("visit") or None
        if visit_id is not None and not str(visit_id).isdigit():
            raise ValidationError({"visit": "Must be a visit id."})

        since = request.query_params.get("since") or None
        if since is not None:
            try:
                since = parse_date(since)
            except ValueError:
                since = None
            if since is None:
                raise ValidationError({"since": "Use YYYY-MM-DD."})

        try:
            sections = queue_sections(
                name,
                visit_id=int(visit_id) if visit_id else None,
                since=since,
            )
        except KeyError:
            raise NotFound(f"Unknown queue '{name}'.") from None

        return Response(
            {
                "queue": name,
                "sections": {
                    key: VisitTestSerializer(qs, many=True).data
                    for key, qs in sections.items()
                },
            }
        )
