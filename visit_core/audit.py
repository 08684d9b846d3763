# visit_core/audit.py
"""
Audit recording for visit-test transitions.

Two policies, selected by settings.VISIT_AUDIT_MODE:

- "best_effort" (default): the audit row is written after the state change
  has committed. A failed write is logged and queued for retry, never
  surfaced to the operator.
- "strict": the audit row is written inside the transition's transaction;
  a failed write rolls the transition back.

Both are idempotent on AuditLog.transition_key.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction

from visit_core.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    action: str
    resource_id: int
    actor_id: Optional[int]
    actor_username: str
    actor_role: str = ""
    details: str = ""
    old_value: Any = None
    new_value: Any = None
    transition_key: Optional[str] = None
    resource_type: str = "visit_test"

    def as_payload(self) -> Dict[str, Any]:
        """JSON-safe form, used for the retry queue."""
        return asdict(self)


def transition_key(resource_id: int, version: int, action: str) -> str:
    return f"visit_test:{resource_id}:v{version}:{action}"


def write_entry(entry: AuditEntry) -> AuditLog:
    defaults = {
        "actor_id": entry.actor_id,
        "actor_username": entry.actor_username,
        "actor_role": entry.actor_role,
        "action": entry.action,
        "resource_type": entry.resource_type,
        "resource_id": entry.resource_id,
        "details": entry.details,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
    }
    if not entry.transition_key:
        return AuditLog.objects.create(**defaults)

    obj, _ = AuditLog.objects.get_or_create(
        transition_key=entry.transition_key,
        defaults=defaults,
    )
    return obj


class AuditRecorder:
    # True when the entry must be written inside the transition's transaction
    in_transaction = False

    def record(self, entry: AuditEntry) -> None:
        raise NotImplementedError


class StrictAuditRecorder(AuditRecorder):
    in_transaction = True

    def record(self, entry: AuditEntry) -> None:
        write_entry(entry)


class BestEffortAuditRecorder(AuditRecorder):
    def record(self, entry: AuditEntry) -> None:
        try:
            with transaction.atomic():
                write_entry(entry)
        except Exception:
            logger.exception(
                "Audit write failed for %s (%s); queued for retry.",
                entry.transition_key,
                entry.action,
            )
            self.enqueue_retry(entry)

    def enqueue_retry(self, entry: AuditEntry) -> None:
        from visit_core.tasks import retry_audit_entry

        try:
            retry_audit_entry.delay(entry.as_payload())
        except Exception:
            logger.exception("Could not queue audit retry for %s (ignored).", entry.transition_key)


RECORDERS = {
    "best_effort": BestEffortAuditRecorder,
    "strict": StrictAuditRecorder,
}


def get_audit_recorder() -> AuditRecorder:
    mode = str(getattr(settings, "VISIT_AUDIT_MODE", "best_effort") or "best_effort").strip().lower()
    try:
        return RECORDERS[mode]()
    except KeyError:
        raise ImproperlyConfigured(
            f"VISIT_AUDIT_MODE must be one of {', '.join(sorted(RECORDERS))}, got {mode!r}."
        ) from None
