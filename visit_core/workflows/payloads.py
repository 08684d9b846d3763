# visit_core/workflows/payloads.py
"""
Result payloads as a tagged union keyed by the template's report type.

A standard template stores `results` (parameter name -> value); a culture
template stores `culture_result`. Exactly one side is ever written, the
other is always nulled.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from visit_core.workflows.exceptions import IncompleteResultError, WorkflowValidationError


REPORT_STANDARD = "standard"
REPORT_CULTURE = "culture"

GROWTH = "growth"
NO_GROWTH = "no_growth"
GROWTH_STATUSES = (GROWTH, NO_GROWTH)

SENSITIVITY_CODES = ("S", "R", "I")

HEADING = "heading"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class StandardResult:
    values: Dict[str, Any]

    report_type = REPORT_STANDARD

    def storage_fields(self) -> Dict[str, Any]:
        return {"results": dict(self.values), "culture_result": None}


@dataclass(frozen=True)
class SensitivityRow:
    antibiotic_id: int
    sensitivity: str


@dataclass(frozen=True)
class CultureResult:
    growth_status: str
    organism_isolated: str = ""
    colony_count: str = ""
    sensitivity: Tuple[SensitivityRow, ...] = field(default_factory=tuple)
    remarks: str = ""

    report_type = REPORT_CULTURE

    def storage_fields(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sensitivity"] = [asdict(row) for row in self.sensitivity]
        return {"results": None, "culture_result": data}


ResultPayload = Union[StandardResult, CultureResult]

CLEARED_PAYLOAD: Dict[str, Any] = {"results": None, "culture_result": None}


# ===============================================================
# Template helpers
# ===============================================================

def template_fields(template) -> List[Dict[str, Any]]:
    params = getattr(template, "parameters", None) or {}
    fields = params.get("fields") if isinstance(params, Mapping) else None
    return [f for f in (fields or []) if isinstance(f, Mapping)]


def required_parameter_names(template) -> List[str]:
    """
    Every template field that is not a display-only heading.
    """
    return [
        str(f.get("name"))
        for f in template_fields(template)
        if f.get("name") and str(f.get("type") or "").lower() != HEADING
    ]


def report_type_of(template) -> str:
    value = str(getattr(template, "report_type", "") or REPORT_STANDARD).strip().lower()
    return REPORT_CULTURE if value == REPORT_CULTURE else REPORT_STANDARD


# ===============================================================
# Parsing and validation
# ===============================================================

def _parse_standard(template, payload: Mapping[str, Any]) -> StandardResult:
    values = payload.get("results")
    if values is None:
        values = {}
    if not isinstance(values, Mapping):
        raise WorkflowValidationError(
            "Results must be a mapping of parameter name to value.",
            details={"results": "Expected an object."},
        )

    missing = [name for name in required_parameter_names(template) if _is_blank(values.get(name))]
    if missing:
        raise IncompleteResultError(missing)

    return StandardResult(values={str(k): v for k, v in values.items()})


def _parse_sensitivity(rows: Any) -> Tuple[SensitivityRow, ...]:
    if rows in (None, ""):
        return ()
    if not isinstance(rows, (list, tuple)):
        raise WorkflowValidationError(
            "Sensitivity panel must be a list.",
            details={"sensitivity": "Expected a list."},
        )

    parsed: List[SensitivityRow] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise WorkflowValidationError(
                f"Sensitivity row {index + 1} is malformed.",
                details={"sensitivity": {index: "Expected an object."}},
            )
        try:
            antibiotic_id = int(row.get("antibiotic_id"))
        except (TypeError, ValueError):
            raise WorkflowValidationError(
                f"Sensitivity row {index + 1} has no antibiotic.",
                details={"sensitivity": {index: "antibiotic_id is required."}},
            ) from None
        code = str(row.get("sensitivity") or "").strip().upper()
        if code not in SENSITIVITY_CODES:
            raise WorkflowValidationError(
                f"Sensitivity row {index + 1} must be S, R or I.",
                details={"sensitivity": {index: "Use S, R or I."}},
            )
        parsed.append(SensitivityRow(antibiotic_id=antibiotic_id, sensitivity=code))
    return tuple(parsed)


def _parse_culture(payload: Mapping[str, Any]) -> CultureResult:
    data = payload.get("culture_result")
    if not isinstance(data, Mapping):
        raise WorkflowValidationError(
            "Culture result is required for this test.",
            details={"culture_result": "Expected an object."},
        )

    growth_status = str(data.get("growth_status") or "").strip().lower()
    if growth_status not in GROWTH_STATUSES:
        raise WorkflowValidationError(
            "Select a growth status: growth or no growth.",
            details={"growth_status": f"Must be one of {', '.join(GROWTH_STATUSES)}."},
        )

    organism = str(data.get("organism_isolated") or "").strip()
    if growth_status == GROWTH and not organism:
        raise IncompleteResultError(["organism_isolated"])

    return CultureResult(
        growth_status=growth_status,
        organism_isolated=organism,
        colony_count=str(data.get("colony_count") or "").strip(),
        sensitivity=_parse_sensitivity(data.get("sensitivity")),
        remarks=str(data.get("remarks") or "").strip(),
    )


def parse_payload(template, payload: Optional[Mapping[str, Any]]) -> ResultPayload:
    """
    Validate a raw payload against the template and return its typed form.

    Raises IncompleteResultError naming the missing fields, or
    WorkflowValidationError for malformed input. Nothing is written here.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise WorkflowValidationError("Result payload must be an object.")

    if report_type_of(template) == REPORT_CULTURE:
        return _parse_culture(payload)
    return _parse_standard(template, payload)


def stored_payload(instance) -> Optional[Dict[str, Any]]:
    """
    Snapshot of whatever payload side is currently populated.
    """
    if instance.culture_result:
        return {"culture_result": instance.culture_result}
    if instance.results:
        return {"results": instance.results}
    return None
