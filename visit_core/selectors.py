# visit_core/selectors.py
"""
Read-only work queues over visit tests.

Each queue is a set of named sections, each a plain queryset filtered by
status. Queues are never stored; they are always computed from live rows.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from django.db.models import Q, QuerySet

from visit_core.models import VisitTest
from visit_core.workflows import (
    APPROVED,
    AWAITING_APPROVAL,
    CANCELLED,
    IN_PROGRESS,
    PENDING,
    REJECTED,
    SAMPLE_COLLECTED,
)


def base_queryset() -> QuerySet:
    return VisitTest.objects.select_related("visit", "template").prefetch_related("rejections")


def phlebotomy_queue(qs: QuerySet) -> Dict[str, QuerySet]:
    return {
        "pending": qs.filter(status=PENDING).order_by("created_at", "id"),
        "recollection": qs.filter(status=REJECTED).order_by("-last_rejection_at", "-id"),
        "collected": qs.filter(
            status__in=[SAMPLE_COLLECTED, IN_PROGRESS, AWAITING_APPROVAL, APPROVED]
        ).order_by("-collected_at", "-id"),
    }


def lab_queue(qs: QuerySet) -> Dict[str, QuerySet]:
    returned = Q(status=IN_PROGRESS, rejection_count__gt=0)
    return {
        "pending_results": qs.filter(status=SAMPLE_COLLECTED).order_by("collected_at", "id"),
        "result_rejections": qs.filter(returned).order_by("-last_rejection_at", "-id"),
        "processed": qs.filter(status__in=[IN_PROGRESS, AWAITING_APPROVAL, APPROVED])
        .exclude(returned)
        .order_by("-collected_at", "-id"),
        "cancelled": qs.filter(status=CANCELLED).order_by("-updated_at", "-id"),
    }


def approver_queue(qs: QuerySet) -> Dict[str, QuerySet]:
    return {
        "awaiting_approval": qs.filter(status=AWAITING_APPROVAL).order_by("entered_at", "id"),
        "recently_approved": qs.filter(status=APPROVED).order_by("-approved_at", "-id"),
    }


QUEUES: Dict[str, Callable[[QuerySet], Dict[str, QuerySet]]] = {
    "phlebotomy": phlebotomy_queue,
    "lab": lab_queue,
    "approver": approver_queue,
}


def queue_sections(name: str, *, visit_id: Optional[int] = None, since=None) -> Dict[str, QuerySet]:
    """
    Raises KeyError for an unknown queue name.
    """
    build = QUEUES[(name or "").strip().lower()]
    qs = base_queryset()
    if visit_id is not None:
        qs = qs.filter(visit_id=visit_id)
    if since is not None:
        qs = qs.filter(created_at__date__gte=since)
    return build(qs)
