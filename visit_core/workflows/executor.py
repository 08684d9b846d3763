# visit_core/workflows/executor.py
"""
Authoritative visit-test transitions.

Every operation follows the same order of checks:

1. an actor must be present
2. the record must exist
3. the actor's role must carry the operation's permission
4. the record must be in an accepted source state (and at the version the
   caller last saw, when one is given)
5. inputs must validate

The write itself is a compare-and-swap on (status, version). Losing the race
to a concurrent writer raises StaleStateError and nothing is persisted.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from visit_core.audit import AuditEntry, get_audit_recorder, transition_key
from visit_core.models import RejectionRecord, VisitTest
from visit_core.workflows import (
    APPROVED,
    AUDIT_APPROVE_RESULT,
    AUDIT_CANCEL_TEST,
    AUDIT_COLLECT_SAMPLE,
    AUDIT_EDIT_APPROVED,
    AUDIT_EDIT_BEFORE_APPROVAL,
    AUDIT_ENTER_RESULT,
    AUDIT_PRINT_REPORT,
    AUDIT_RECOLLECT_SAMPLE,
    AUDIT_REJECT_RESULT,
    AUDIT_REJECT_SAMPLE,
    AWAITING_APPROVAL,
    CANCELLED,
    IN_PROGRESS,
    PRINTED,
    REJECTED,
    SAMPLE_COLLECTED,
    permission_for,
    roles_have_permission,
    rule_for,
)
from visit_core.workflows.exceptions import (
    ActorRequiredError,
    PersistenceError,
    StaleStateError,
    WorkflowError,
    WorkflowPermissionError,
    WorkflowValidationError,
    VisitTestNotFound,
)
from visit_core.workflows.payloads import CLEARED_PAYLOAD, parse_payload, stored_payload

logger = logging.getLogger(__name__)


# ===============================================================
# Preconditions
# ===============================================================

def _require_actor(actor):
    if actor is None or not str(getattr(actor, "username", "") or "").strip():
        raise ActorRequiredError()
    return actor


def _load(test_id) -> VisitTest:
    try:
        return VisitTest.objects.select_related("template", "visit").get(pk=test_id)
    except (VisitTest.DoesNotExist, ValueError, TypeError):
        raise VisitTestNotFound(test_id) from None


def _holds(actor, permission: str) -> bool:
    roles = getattr(actor, "held_roles", None)
    return roles_have_permission(roles if roles is not None else actor.role, permission)


def _require_permission(actor, action: str, instance: VisitTest) -> None:
    permission = permission_for(action, instance.status)
    if not _holds(actor, permission):
        raise WorkflowPermissionError(role=actor.role, permission=permission, action=action)


def _require_source(instance: VisitTest, action: str, expected_version: Optional[int]) -> None:
    sources = rule_for(action)["sources"]
    if instance.status not in sources:
        raise StaleStateError(
            test_id=instance.pk,
            current=instance.status,
            expected=sources,
            action=action,
            current_version=instance.version,
        )
    if expected_version is not None and int(expected_version) != instance.version:
        raise StaleStateError(
            test_id=instance.pk,
            current=instance.status,
            expected=sources,
            action=action,
            current_version=instance.version,
            expected_version=int(expected_version),
        )


def _require_text(value, *, field: str, message: str, min_length: int = 1) -> str:
    text = str(value or "").strip()
    if len(text) < min_length:
        raise WorkflowValidationError(message, details={field: message})
    return text


def _prepare(test_id, actor, action: str, expected_version: Optional[int]):
    actor = _require_actor(actor)
    instance = _load(test_id)
    _require_permission(actor, action, instance)
    _require_source(instance, action, expected_version)
    return actor, instance


def _actor_user(actor):
    user = getattr(actor, "user", None)
    return user if getattr(user, "pk", None) else None


# ===============================================================
# Compare-and-swap write
# ===============================================================

def _apply(
    instance: VisitTest,
    *,
    action: str,
    actor,
    audit_action: str,
    fields: Dict[str, Any],
    details: str,
    old_value: Any = None,
    new_value: Any = None,
    after_write: Optional[Callable[[], None]] = None,
) -> VisitTest:
    recorder = get_audit_recorder()
    new_version = instance.version + 1
    entry = AuditEntry(
        action=audit_action,
        resource_id=instance.pk,
        actor_id=getattr(actor, "id", None) if _actor_user(actor) else None,
        actor_username=actor.username,
        actor_role=actor.role or "",
        details=details,
        old_value=old_value,
        new_value=new_value,
        transition_key=transition_key(instance.pk, new_version, audit_action),
    )

    try:
        with transaction.atomic():
            updated = VisitTest.objects.filter(
                pk=instance.pk,
                status=instance.status,
                version=instance.version,
            ).update(version=F("version") + 1, updated_at=timezone.now(), **fields)

            if updated != 1:
                raise _lost_race(instance, action)

            if after_write is not None:
                after_write()

            if recorder.in_transaction:
                recorder.record(entry)
    except DatabaseError as exc:
        logger.exception("Persisting %s for visit test %s failed.", action, instance.pk)
        raise PersistenceError(
            "Could not save the change. Please try again.",
            details={"test_id": instance.pk},
        ) from exc

    if not recorder.in_transaction:
        recorder.record(entry)

    logger.info(
        "visit_test %s %s: %s -> %s (v%s) by %s [%s]",
        instance.pk,
        action,
        instance.status,
        fields.get("status", instance.status),
        new_version,
        actor.username,
        actor.role,
    )
    return _load(instance.pk)


def _lost_race(instance: VisitTest, action: str) -> StaleStateError:
    row = VisitTest.objects.filter(pk=instance.pk).values("status", "version").first() or {}
    return StaleStateError(
        test_id=instance.pk,
        current=row.get("status", instance.status),
        expected=rule_for(action)["sources"],
        action=action,
        current_version=row.get("version"),
        expected_version=instance.version,
    )


def _resolve_rejections(instance: VisitTest, kind: str, actor) -> Callable[[], None]:
    def resolve():
        RejectionRecord.objects.filter(
            visit_test_id=instance.pk,
            kind=kind,
            status=RejectionRecord.STATUS_PENDING,
        ).update(
            status=RejectionRecord.STATUS_RESOLVED,
            resolved_by=_actor_user(actor),
            resolved_by_username=actor.username,
            resolved_at=timezone.now(),
        )

    return resolve


def _record_rejection(instance: VisitTest, kind: str, reason: str, actor) -> Callable[[], None]:
    def record():
        RejectionRecord.objects.create(
            visit_test_id=instance.pk,
            kind=kind,
            reason=reason,
            old_payload=stored_payload(instance),
            rejected_by=_actor_user(actor),
            rejected_by_username=actor.username,
        )

    return record


def _label(instance: VisitTest) -> str:
    return f"{instance.template.name} (visit {instance.visit.visit_code})"


# ===============================================================
# Operations
# ===============================================================

def collect_sample(test_id, specimen_type, actor, *, expected_version=None) -> VisitTest:
    """
    PENDING or REJECTED -> SAMPLE_COLLECTED.

    From REJECTED this is a recollection and resolves the open sample rejection.
    """
    actor, instance = _prepare(test_id, actor, "collect_sample", expected_version)
    specimen = _require_text(
        specimen_type,
        field="specimen_type",
        message="Specimen type is required to collect a sample.",
    )

    recollection = instance.status == REJECTED
    return _apply(
        instance,
        action="collect_sample",
        actor=actor,
        audit_action=AUDIT_RECOLLECT_SAMPLE if recollection else AUDIT_COLLECT_SAMPLE,
        fields={
            "status": SAMPLE_COLLECTED,
            "collected_by": actor.username,
            "collected_at": timezone.now(),
            "specimen_type": specimen,
        },
        details=f"{'Recollected' if recollection else 'Collected'} {specimen} sample for {_label(instance)}",
        old_value={"status": instance.status},
        new_value={"status": SAMPLE_COLLECTED, "specimen_type": specimen},
        after_write=(
            _resolve_rejections(instance, RejectionRecord.KIND_SAMPLE, actor) if recollection else None
        ),
    )


def reject_sample(test_id, reason, actor, *, expected_version=None) -> VisitTest:
    actor, instance = _prepare(test_id, actor, "reject_sample", expected_version)
    reason = _require_text(reason, field="reason", message="A rejection reason is required.")

    return _apply(
        instance,
        action="reject_sample",
        actor=actor,
        audit_action=AUDIT_REJECT_SAMPLE,
        fields={
            "status": REJECTED,
            "rejection_count": F("rejection_count") + 1,
            "last_rejection_at": timezone.now(),
            **CLEARED_PAYLOAD,
        },
        details=f"Rejected sample for {_label(instance)}: {reason}",
        old_value={"status": instance.status, "specimen_type": instance.specimen_type},
        new_value={"status": REJECTED, "reason": reason},
        after_write=_record_rejection(instance, RejectionRecord.KIND_SAMPLE, reason, actor),
    )


def submit_results(test_id, payload, actor, *, expected_version=None) -> VisitTest:
    """
    SAMPLE_COLLECTED or IN_PROGRESS -> AWAITING_APPROVAL.

    The payload must be complete for the template; a re-submission after a
    result rejection resolves the open rejection record.
    """
    actor, instance = _prepare(test_id, actor, "submit_results", expected_version)
    parsed = parse_payload(instance.template, payload)
    storage = parsed.storage_fields()

    resubmission = instance.status == IN_PROGRESS
    return _apply(
        instance,
        action="submit_results",
        actor=actor,
        audit_action=AUDIT_ENTER_RESULT,
        fields={
            "status": AWAITING_APPROVAL,
            "entered_by": actor.username,
            "entered_at": timezone.now(),
            **storage,
        },
        details=f"{'Re-entered' if resubmission else 'Entered'} results for {_label(instance)}",
        old_value=stored_payload(instance),
        new_value={k: v for k, v in storage.items() if v is not None},
        after_write=(
            _resolve_rejections(instance, RejectionRecord.KIND_RESULT, actor) if resubmission else None
        ),
    )


def approve_result(test_id, actor, *, expected_version=None) -> VisitTest:
    actor, instance = _prepare(test_id, actor, "approve_result", expected_version)

    return _apply(
        instance,
        action="approve_result",
        actor=actor,
        audit_action=AUDIT_APPROVE_RESULT,
        fields={
            "status": APPROVED,
            "approved_by": actor.username,
            "approved_at": timezone.now(),
        },
        details=f"Approved results for {_label(instance)}",
        old_value={"status": instance.status},
        new_value={"status": APPROVED},
    )


def reject_result(test_id, reason, actor, *, expected_version=None) -> VisitTest:
    """
    AWAITING_APPROVAL -> IN_PROGRESS. The entered payload is cleared and kept
    on the rejection record.
    """
    actor, instance = _prepare(test_id, actor, "reject_result", expected_version)
    reason = _require_text(reason, field="reason", message="A rejection reason is required.")

    return _apply(
        instance,
        action="reject_result",
        actor=actor,
        audit_action=AUDIT_REJECT_RESULT,
        fields={
            "status": IN_PROGRESS,
            "rejection_count": F("rejection_count") + 1,
            "last_rejection_at": timezone.now(),
            "approved_by": "",
            "approved_at": None,
            **CLEARED_PAYLOAD,
        },
        details=f"Rejected results for {_label(instance)}: {reason}",
        old_value=stored_payload(instance),
        new_value={"status": IN_PROGRESS, "reason": reason},
        after_write=_record_rejection(instance, RejectionRecord.KIND_RESULT, reason, actor),
    )


def edit_result(test_id, payload, reason, actor, *, expected_version=None) -> VisitTest:
    """
    Correct the payload of a test awaiting approval or already approved.
    Status is unchanged. Editing an approved report needs EDIT_APPROVED_REPORT.
    """
    actor, instance = _prepare(test_id, actor, "edit_result", expected_version)
    reason = _require_text(reason, field="reason", message="A reason for the edit is required.")
    storage = parse_payload(instance.template, payload).storage_fields()

    approved = instance.status == APPROVED
    return _apply(
        instance,
        action="edit_result",
        actor=actor,
        audit_action=AUDIT_EDIT_APPROVED if approved else AUDIT_EDIT_BEFORE_APPROVAL,
        fields=dict(storage),
        details=(
            f"Edited {'approved report' if approved else 'results'} for {_label(instance)}: {reason}"
        ),
        old_value=stored_payload(instance),
        new_value={k: v for k, v in storage.items() if v is not None},
    )


def mark_printed(test_id, actor, *, expected_version=None) -> VisitTest:
    actor, instance = _prepare(test_id, actor, "mark_printed", expected_version)

    return _apply(
        instance,
        action="mark_printed",
        actor=actor,
        audit_action=AUDIT_PRINT_REPORT,
        fields={"status": PRINTED},
        details=f"Printed report for {_label(instance)}",
        old_value={"status": instance.status},
        new_value={"status": PRINTED},
    )


def mark_visit_printed(visit_id, actor) -> Dict[str, list]:
    """
    Print every approved test of a visit, one transition per test.

    Returns {"printed": [...ids], "failed": [{"id", "code", "error"}]}; one test
    failing (stale, store failure) does not stop the others, and tests
    already printed stay printed.
    """
    actor = _require_actor(actor)
    if not _holds(actor, permission_for("mark_printed")):
        raise WorkflowPermissionError(
            role=actor.role,
            permission=permission_for("mark_printed"),
            action="mark_printed",
        )

    printed = []
    failed = []
    tests = VisitTest.objects.filter(visit_id=visit_id, status=APPROVED).order_by("id")
    for test_id, version in tests.values_list("id", "version"):
        try:
            mark_printed(test_id, actor, expected_version=version)
            printed.append(test_id)
        except WorkflowError as exc:
            failed.append({"id": test_id, "code": exc.code, "error": exc.message})

    return {"printed": printed, "failed": failed}


def cancel_test(test_id, reason, actor, *, expected_version=None) -> VisitTest:
    actor, instance = _prepare(test_id, actor, "cancel_test", expected_version)
    min_length = int(getattr(settings, "CANCEL_REASON_MIN_LENGTH", 10))
    reason = _require_text(
        reason,
        field="reason",
        message=f"Please provide a detailed reason (at least {min_length} characters).",
        min_length=min_length,
    )

    return _apply(
        instance,
        action="cancel_test",
        actor=actor,
        audit_action=AUDIT_CANCEL_TEST,
        fields={
            "status": CANCELLED,
            "cancel_reason": reason,
            "cancelled_by": actor.username,
        },
        details=f"Cancelled {_label(instance)}: {reason}",
        old_value={"status": instance.status},
        new_value={"status": CANCELLED, "reason": reason},
    )


OPERATIONS = {
    "collect_sample": collect_sample,
    "reject_sample": reject_sample,
    "submit_results": submit_results,
    "approve_result": approve_result,
    "reject_result": reject_result,
    "edit_result": edit_result,
    "mark_printed": mark_printed,
    "cancel_test": cancel_test,
}
