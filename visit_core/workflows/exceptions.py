# visit_core/workflows/exceptions.py
"""
Failure taxonomy of the visit-test workflow.

Every error carries a stable `code` and a message that can be shown to an
operator as-is. The API layer maps them to HTTP responses in
visit_core.api_errors.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class WorkflowError(Exception):
    code = "workflow_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StaleStateError(WorkflowError):
    """
    The persisted record no longer matches what the caller expected.
    The caller must refetch before retrying.
    """

    code = "stale_state"

    def __init__(
        self,
        *,
        test_id: int,
        current: str,
        expected: Iterable[str],
        action: str,
        current_version: Optional[int] = None,
        expected_version: Optional[int] = None,
    ):
        expected = sorted(expected)
        if current in expected and expected_version is not None:
            message = (
                f"Test #{test_id} was changed by another user "
                f"(version {current_version}, you had {expected_version}). Refresh and try again."
            )
        else:
            message = (
                f"Test #{test_id} is {current}; '{action.replace('_', ' ')}' requires "
                f"{' or '.join(expected)}. Refresh and try again."
            )
        super().__init__(
            message,
            details={
                "test_id": test_id,
                "current": current,
                "expected": expected,
                "current_version": current_version,
                "expected_version": expected_version,
            },
        )
        self.test_id = test_id
        self.current = current
        self.expected = expected


class WorkflowValidationError(WorkflowError):
    code = "validation_error"


class IncompleteResultError(WorkflowValidationError):
    code = "incomplete_result"

    def __init__(self, missing_fields: Iterable[str]):
        missing = list(missing_fields)
        super().__init__(
            "Partially tested, cannot send to approval. Please fill in: "
            + ", ".join(missing),
            details={"missing_fields": missing},
        )
        self.missing_fields = missing


class WorkflowPermissionError(WorkflowError):
    code = "permission_denied"

    def __init__(self, *, role: str, permission: str, action: str):
        super().__init__(
            f"Role {role or 'NONE'} is not allowed to {action.replace('_', ' ')} "
            f"(requires {permission}).",
            details={"role": role, "permission": permission},
        )
        self.role = role
        self.permission = permission


class ActorRequiredError(WorkflowError):
    code = "actor_required"

    def __init__(self, message: str = "User session has expired. Please log in again."):
        super().__init__(message)


class PersistenceError(WorkflowError):
    code = "persistence_error"


class VisitTestNotFound(WorkflowError):
    code = "not_found"

    def __init__(self, test_id):
        super().__init__(f"Visit test #{test_id} not found.", details={"test_id": test_id})
        self.test_id = test_id


__all__ = [
    "WorkflowError",
    "StaleStateError",
    "WorkflowValidationError",
    "IncompleteResultError",
    "WorkflowPermissionError",
    "ActorRequiredError",
    "PersistenceError",
    "VisitTestNotFound",
]
