# visit_core/workflows/__init__.py
"""
Authoritative workflow definition for visit tests.

This module defines:
- Valid states
- Allowed transitions and the operation that drives each one
- Role-based permission policy
- Introspection helpers for UI and API

Pure data and functions only. Persistence lives in
visit_core.workflows.executor; do not bypass these rules at model or view level.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set, Union


# ===============================================================
# Canonical states and edges
# ===============================================================

PENDING = "PENDING"
SAMPLE_COLLECTED = "SAMPLE_COLLECTED"
REJECTED = "REJECTED"
IN_PROGRESS = "IN_PROGRESS"
AWAITING_APPROVAL = "AWAITING_APPROVAL"
APPROVED = "APPROVED"
PRINTED = "PRINTED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

VISIT_TEST_STATES: List[str] = [
    PENDING,
    SAMPLE_COLLECTED,
    REJECTED,
    IN_PROGRESS,
    AWAITING_APPROVAL,
    APPROVED,
    PRINTED,
    COMPLETED,
    CANCELLED,
]

# COMPLETED is recognised but has no inbound edge in this engine.
VISIT_TEST_TRANSITIONS: Dict[str, Set[str]] = {
    PENDING: {SAMPLE_COLLECTED, CANCELLED},
    REJECTED: {SAMPLE_COLLECTED},
    SAMPLE_COLLECTED: {REJECTED, AWAITING_APPROVAL},
    IN_PROGRESS: {AWAITING_APPROVAL},
    AWAITING_APPROVAL: {APPROVED, IN_PROGRESS},
    APPROVED: {PRINTED},
    PRINTED: set(),
    COMPLETED: set(),
    CANCELLED: set(),
}

TERMINAL_STATES: Set[str] = {s for s, nxt in VISIT_TEST_TRANSITIONS.items() if not nxt}


# ===============================================================
# Operations
# ===============================================================
# Each operation names the source states it accepts, the state it
# produces and the permission it needs. edit_result keeps the status.

ACTION_RULES: Dict[str, Dict[str, Any]] = {
    "collect_sample": {
        "sources": {PENDING, REJECTED},
        "target": SAMPLE_COLLECTED,
        "permission": "COLLECT_SAMPLE",
    },
    "reject_sample": {
        "sources": {SAMPLE_COLLECTED},
        "target": REJECTED,
        "permission": "REJECT_SAMPLE",
    },
    "submit_results": {
        "sources": {SAMPLE_COLLECTED, IN_PROGRESS},
        "target": AWAITING_APPROVAL,
        "permission": "ENTER_RESULTS",
    },
    "approve_result": {
        "sources": {AWAITING_APPROVAL},
        "target": APPROVED,
        "permission": "APPROVE_RESULTS",
    },
    "reject_result": {
        "sources": {AWAITING_APPROVAL},
        "target": IN_PROGRESS,
        "permission": "APPROVE_RESULTS",
    },
    "edit_result": {
        "sources": {AWAITING_APPROVAL, APPROVED},
        "target": None,
        "permission": "ENTER_RESULTS",
    },
    "mark_printed": {
        "sources": {APPROVED},
        "target": PRINTED,
        "permission": "PRINT_REPORT",
    },
    "cancel_test": {
        "sources": {PENDING},
        "target": CANCELLED,
        "permission": "CANCEL_TEST",
    },
}

# Audit action codes
AUDIT_COLLECT_SAMPLE = "COLLECT_SAMPLE"
AUDIT_RECOLLECT_SAMPLE = "RECOLLECT_SAMPLE"
AUDIT_REJECT_SAMPLE = "REJECT_SAMPLE"
AUDIT_ENTER_RESULT = "ENTER_RESULT"
AUDIT_APPROVE_RESULT = "APPROVE_RESULT"
AUDIT_REJECT_RESULT = "REJECT_RESULT"
AUDIT_EDIT_BEFORE_APPROVAL = "EDIT_RESULT_BEFORE_APPROVAL"
AUDIT_EDIT_APPROVED = "EDIT_APPROVED_REPORT"
AUDIT_PRINT_REPORT = "PRINT_REPORT"
AUDIT_CANCEL_TEST = "CANCEL_TEST"


# ===============================================================
# Role normalization and permission rules
# ===============================================================

ROLES: List[str] = [
    "SUDO",
    "ADMIN",
    "APPROVER",
    "LAB",
    "PHLEBOTOMY",
    "RECEPTION",
    "B2B_CLIENT",
]

ROLE_ALIASES: Dict[str, str] = {
    "SUDO": "SUDO",
    "SUPERUSER": "SUDO",
    "ADMIN": "ADMIN",
    "SYSTEM_ADMIN": "ADMIN",
    "APPROVER": "APPROVER",
    "PATHOLOGIST": "APPROVER",
    "LAB": "LAB",
    "LAB_TECH": "LAB",
    "TECHNICIAN": "LAB",
    "PHLEBOTOMY": "PHLEBOTOMY",
    "PHLEBOTOMIST": "PHLEBOTOMY",
    "RECEPTION": "RECEPTION",
    "RECEPTIONIST": "RECEPTION",
    "B2B_CLIENT": "B2B_CLIENT",
}

ROLE_PERMISSIONS: Dict[str, Set[str]] = {
    "SUDO": {
        "COLLECT_SAMPLE",
        "REJECT_SAMPLE",
        "ENTER_RESULTS",
        "APPROVE_RESULTS",
        "EDIT_APPROVED_REPORT",
        "PRINT_REPORT",
        "CANCEL_TEST",
    },
    "ADMIN": {
        "COLLECT_SAMPLE",
        "REJECT_SAMPLE",
        "ENTER_RESULTS",
        "APPROVE_RESULTS",
        "PRINT_REPORT",
        "CANCEL_TEST",
    },
    "APPROVER": {"APPROVE_RESULTS", "PRINT_REPORT"},
    "LAB": {"REJECT_SAMPLE", "ENTER_RESULTS", "PRINT_REPORT"},
    "PHLEBOTOMY": {"COLLECT_SAMPLE", "REJECT_SAMPLE"},
    "RECEPTION": {"PRINT_REPORT"},
    "B2B_CLIENT": {"PRINT_REPORT"},
}


def normalize_state(value: str) -> str:
    return str(value or "").strip().upper()


def normalize_role(value: str) -> str:
    raw = str(value or "").strip().upper().replace(" ", "_")
    return ROLE_ALIASES.get(raw, raw)


def role_has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(normalize_role(role), set())


def roles_have_permission(roles: Union[str, Iterable[str], None], permission: str) -> bool:
    """
    True if any of `roles` grants `permission`. A single role string is accepted.
    """
    if roles is None or isinstance(roles, str):
        roles = [roles]
    return any(role_has_permission(r, permission) for r in roles)


def roles_with_permission(permission: str) -> List[str]:
    return [r for r in ROLES if permission in ROLE_PERMISSIONS[r]]


# ===============================================================
# Public workflow API
# ===============================================================

def rule_for(action: str) -> Dict[str, Any]:
    try:
        return ACTION_RULES[action]
    except KeyError:
        raise ValueError(f"Unknown visit-test operation: {action}") from None


def validate_transition(current: str, target: str) -> None:
    """
    Raises ValueError if current -> target is not an edge of the canonical workflow.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in VISIT_TEST_TRANSITIONS:
        raise ValueError(f"Unknown visit-test state: {cur}")
    if tgt not in VISIT_TEST_TRANSITIONS:
        raise ValueError(f"Unknown visit-test state: {tgt}")
    if tgt not in VISIT_TEST_TRANSITIONS[cur]:
        raise ValueError(f"Invalid visit-test transition: {cur} -> {tgt}")


def allowed_next_states(current: str) -> List[str]:
    """
    Canonical next states only, independent of role.
    """
    return sorted(VISIT_TEST_TRANSITIONS.get(normalize_state(current), set()))


def permission_for(action: str, current: Optional[str] = None) -> str:
    rule = rule_for(action)
    if action == "edit_result" and normalize_state(current or "") == APPROVED:
        return "EDIT_APPROVED_REPORT"
    return rule["permission"]


def allowed_actions(current: str, role: Union[str, Iterable[str], None] = None) -> List[str]:
    """
    Operations that accept `current` as a source state.

    With a role (or a collection of roles held together), only the
    operations those roles may perform.
    """
    cur = normalize_state(current)
    out: List[str] = []
    for action, rule in ACTION_RULES.items():
        if cur not in rule["sources"]:
            continue
        if role is not None and not roles_have_permission(role, permission_for(action, cur)):
            continue
        out.append(action)
    return sorted(out)


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    return {
        "kind": "visit_test",
        "states": list(VISIT_TEST_STATES),
        "transitions": {k: sorted(v) for k, v in VISIT_TEST_TRANSITIONS.items()},
        "terminal_states": sorted(TERMINAL_STATES),
        "operations": {
            action: {
                "sources": sorted(rule["sources"]),
                "target": rule["target"],
                "roles": roles_with_permission(rule["permission"]),
            }
            for action, rule in ACTION_RULES.items()
        },
    }


__all__ = [
    "VISIT_TEST_STATES",
    "VISIT_TEST_TRANSITIONS",
    "TERMINAL_STATES",
    "ACTION_RULES",
    "ROLES",
    "normalize_state",
    "normalize_role",
    "role_has_permission",
    "roles_have_permission",
    "roles_with_permission",
    "rule_for",
    "validate_transition",
    "allowed_next_states",
    "permission_for",
    "allowed_actions",
    "workflow_definition",
]
