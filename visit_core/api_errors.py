# visit_core/api_errors.py
"""
DRF exception handler rendering every failure in one envelope:

    {"error": {"code", "message", "details", "request_id"}}

Workflow errors map to HTTP statuses by type; everything else goes through
DRF's default handler first.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from visit_core.workflows.exceptions import (
    ActorRequiredError,
    IncompleteResultError,
    PersistenceError,
    StaleStateError,
    VisitTestNotFound,
    WorkflowError,
    WorkflowPermissionError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first
WORKFLOW_STATUS = (
    (StaleStateError, status.HTTP_409_CONFLICT),
    (IncompleteResultError, status.HTTP_400_BAD_REQUEST),
    (WorkflowValidationError, status.HTTP_400_BAD_REQUEST),
    (WorkflowPermissionError, status.HTTP_403_FORBIDDEN),
    (ActorRequiredError, status.HTTP_401_UNAUTHORIZED),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (VisitTestNotFound, status.HTTP_404_NOT_FOUND),
)


def ensure_request_id(request) -> str:
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        }
    }


def status_for_workflow_error(exc: WorkflowError) -> int:
    for exc_type, http_status in WORKFLOW_STATUS:
        if isinstance(exc, exc_type):
            return http_status
    return status.HTTP_400_BAD_REQUEST


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def api_exception_handler(exc: Exception, context: dict):
    request = context.get("request")

    if isinstance(exc, WorkflowError):
        return Response(
            build_error_envelope(
                request=request,
                code=exc.code,
                message=exc.message,
                details=exc.details or None,
            ),
            status=status_for_workflow_error(exc),
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    data = response.data

    # {"detail": "..."} -> message=detail; anything else is field errors
    message = "Request failed."
    details = data
    if isinstance(data, dict) and "detail" in data:
        message = str(data.get("detail"))
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    return Response(
        build_error_envelope(
            request=request,
            code=_code_for(exc, http_status),
            message=message,
            details=details,
        ),
        status=http_status,
        headers=response.headers,
    )
