# visit_core/tasks.py
from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.db import DatabaseError
from django.utils import timezone

from visit_core.audit import AuditEntry, transition_key, write_entry
from visit_core.models import AuditLog, VisitTest

logger = logging.getLogger("visit_core.audit")


@shared_task(
    bind=True,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    max_retries=5,
)
def retry_audit_entry(self, payload: dict) -> int:
    """
    Re-attempt an audit write that failed after its transition committed.

    Safe to run more than once: the row is keyed by transition_key.
    """
    entry = AuditEntry(**payload)
    row = write_entry(entry)
    logger.info("Audit entry %s recovered on attempt %s.", entry.transition_key, self.request.retries + 1)
    return row.pk


@shared_task
def sweep_unaudited_transitions(hours: int = 24) -> int:
    """
    Warn about recently changed visit tests whose current version has no audit row.

    Returns:
        int: number of tests missing their latest audit entry
    """
    since = timezone.now() - timedelta(hours=hours)
    missing = 0

    qs = VisitTest.objects.filter(updated_at__gte=since, version__gt=1).only("id", "version", "status")
    for test in qs.iterator():
        prefix = transition_key(test.pk, test.version, "")
        if AuditLog.objects.filter(transition_key__startswith=prefix).exists():
            continue
        missing += 1
        logger.warning(
            "Visit test %s (v%s, %s) has no audit entry for its latest transition.",
            test.pk,
            test.version,
            test.status,
        )

    return missing
