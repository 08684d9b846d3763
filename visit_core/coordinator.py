# visit_core/coordinator.py
"""
Client-side optimistic update coordinator for visit tests.

A command is applied to the local record cache at once, then sent to the
server through a transport. The server's canonical record always replaces
the optimistic one in full. On failure the optimistic record is discarded
in favour of a fresh fetch, or of the pre-command snapshot if the fetch
fails too. Nothing is retried automatically.

The cache is a disposable projection. The version it sends is only a hint
that the server checks; conflicts are decided server-side.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from visit_core.workflows import (
    APPROVED,
    AWAITING_APPROVAL,
    CANCELLED,
    IN_PROGRESS,
    PRINTED,
    REJECTED,
    SAMPLE_COLLECTED,
)
from visit_core.workflows.exceptions import PersistenceError, WorkflowError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Observer = Callable[[Record], None]

KIND_NETWORK = "network"
KIND_VALIDATION = "validation"
KIND_SERVER = "server"


class CommandFailed(Exception):
    """A transition command was refused or could not reach the server."""

    def __init__(self, kind: str, message: str, *, code: str = "", details: Optional[dict] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.details = details or {}


class TransportError(Exception):
    def __init__(self, kind: str, message: str, *, code: str = "", details: Optional[dict] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.details = details or {}


# ===============================================================
# Record cache
# ===============================================================

class RecordCache:
    """Visit-test records keyed by id, with change observers."""

    def __init__(self):
        self._records: Dict[int, Record] = {}
        self._observers: List[Observer] = []

    def get(self, test_id: int) -> Optional[Record]:
        record = self._records.get(int(test_id))
        return copy.deepcopy(record) if record is not None else None

    def put(self, record: Record) -> None:
        self._records[int(record["id"])] = copy.deepcopy(record)
        self._publish(record)

    def put_many(self, records: Iterable[Record]) -> None:
        for record in records:
            self.put(record)

    def discard(self, test_id: int) -> None:
        self._records.pop(int(test_id), None)

    def __contains__(self, test_id) -> bool:
        return int(test_id) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self, record: Record) -> None:
        for observer in list(self._observers):
            try:
                observer(copy.deepcopy(record))
            except Exception:
                logger.exception("Visit-test observer failed (ignored).")


# ===============================================================
# Optimistic transforms (pure)
# ===============================================================

def _cleared(record: Record) -> Record:
    record["results"] = None
    record["culture_result"] = None
    return record


def _with_payload(record: Record, payload: Optional[dict]) -> Record:
    payload = payload or {}
    if payload.get("culture_result") is not None:
        record["culture_result"] = payload["culture_result"]
        record["results"] = None
    else:
        record["results"] = payload.get("results")
        record["culture_result"] = None
    return record


def _collect(record, *, specimen_type, **_):
    record.update(status=SAMPLE_COLLECTED, specimen_type=specimen_type)
    return record


def _reject_sample(record, **_):
    record.update(
        status=REJECTED,
        rejection_count=record.get("rejection_count", 0) + 1,
        rejection_kind="sample",
    )
    return _cleared(record)


def _submit(record, *, payload, **_):
    record["status"] = AWAITING_APPROVAL
    return _with_payload(record, payload)


def _approve(record, **_):
    record["status"] = APPROVED
    return record


def _reject_result(record, **_):
    record.update(
        status=IN_PROGRESS,
        rejection_count=record.get("rejection_count", 0) + 1,
        rejection_kind="result",
    )
    return _cleared(record)


def _edit(record, *, payload, **_):
    return _with_payload(record, payload)


def _print(record, **_):
    record["status"] = PRINTED
    return record


def _cancel(record, *, reason, **_):
    record.update(status=CANCELLED, cancel_reason=str(reason or "").strip())
    return record


OPTIMISTIC_TRANSFORMS: Dict[str, Callable[..., Record]] = {
    "collect_sample": _collect,
    "reject_sample": _reject_sample,
    "submit_results": _submit,
    "approve_result": _approve,
    "reject_result": _reject_result,
    "edit_result": _edit,
    "mark_printed": _print,
    "cancel_test": _cancel,
}


def optimistic_record(record: Record, action: str, **kwargs) -> Record:
    """Next record as the server is expected to return it. Input is not mutated."""
    return OPTIMISTIC_TRANSFORMS[action](copy.deepcopy(record), **kwargs)


# ===============================================================
# Transports
# ===============================================================

class Transport:
    def fetch(self, test_id: int) -> Record:
        raise NotImplementedError

    def send(self, action: str, test_id: int, **kwargs) -> Record:
        raise NotImplementedError


def classify_workflow_error(exc: WorkflowError) -> str:
    return KIND_SERVER if isinstance(exc, PersistenceError) else KIND_VALIDATION


class ServiceTransport(Transport):
    """Calls the executor in-process on behalf of a resolved actor."""

    def __init__(self, actor):
        self.actor = actor

    def _serialize(self, instance) -> Record:
        from visit_core.serializers import VisitTestSerializer

        return dict(VisitTestSerializer(instance).data)

    def fetch(self, test_id: int) -> Record:
        from visit_core.models import VisitTest

        try:
            instance = VisitTest.objects.select_related("template", "visit").get(pk=test_id)
        except VisitTest.DoesNotExist:
            raise TransportError(
                KIND_VALIDATION, f"Visit test #{test_id} not found.", code="not_found"
            ) from None
        return self._serialize(instance)

    def send(self, action: str, test_id: int, **kwargs) -> Record:
        from visit_core.workflows.executor import OPERATIONS

        try:
            instance = OPERATIONS[action](test_id, actor=self.actor, **kwargs)
        except WorkflowError as exc:
            raise TransportError(
                classify_workflow_error(exc), exc.message, code=exc.code, details=exc.details
            ) from exc
        return self._serialize(instance)


class ApiTransport(Transport):
    """
    Drives the REST endpoints through a DRF APIClient-compatible client
    (`get(path)`, `post(path, data, format="json")`).
    """

    ACTION_PATHS = {
        "collect_sample": "collect-sample",
        "reject_sample": "reject-sample",
        "submit_results": "submit-results",
        "approve_result": "approve",
        "reject_result": "reject-result",
        "edit_result": "edit-result",
        "mark_printed": "print",
        "cancel_test": "cancel",
    }

    # Socket, timeout and requests errors are all OSError subclasses
    NETWORK_ERRORS = (OSError,)

    def __init__(self, client, base_path: str = "/lims/"):
        self.client = client
        self.base_path = base_path.rstrip("/") + "/"

    def _url(self, test_id: int, action: Optional[str] = None) -> str:
        url = f"{self.base_path}visit-tests/{test_id}/"
        if action:
            url += f"{self.ACTION_PATHS[action]}/"
        return url

    @staticmethod
    def _body(kwargs: Dict[str, Any]) -> Dict[str, Any]:
        body = {k: v for k, v in kwargs.items() if k != "payload" and v is not None}
        body.update(kwargs.get("payload") or {})
        return body

    def _handle(self, response) -> Record:
        status = response.status_code
        try:
            data = response.json()
        except ValueError:
            data = {}

        if status < 400:
            return data

        error = data.get("error") if isinstance(data, dict) else None
        error = error or {}
        message = error.get("message") or f"Request failed with status {status}."
        kind = KIND_SERVER if status >= 500 else KIND_VALIDATION
        raise TransportError(kind, message, code=error.get("code", ""), details=error.get("details"))

    def fetch(self, test_id: int) -> Record:
        try:
            response = self.client.get(self._url(test_id))
        except self.NETWORK_ERRORS as exc:
            raise TransportError(KIND_NETWORK, f"Network error: {exc}") from exc
        return self._handle(response)

    def send(self, action: str, test_id: int, **kwargs) -> Record:
        try:
            response = self.client.post(self._url(test_id, action), self._body(kwargs), format="json")
        except self.NETWORK_ERRORS as exc:
            raise TransportError(KIND_NETWORK, f"Network error: {exc}") from exc
        return self._handle(response)


# ===============================================================
# Coordinator
# ===============================================================

class Coordinator:
    def __init__(self, transport: Transport, cache: Optional[RecordCache] = None):
        self.transport = transport
        self.cache = cache if cache is not None else RecordCache()

    def load(self, test_id: int) -> Record:
        try:
            record = self.transport.fetch(test_id)
        except TransportError as exc:
            raise CommandFailed(exc.kind, exc.message, code=exc.code, details=exc.details) from exc
        self.cache.put(record)
        return record

    def execute(self, action: str, test_id: int, **kwargs) -> Record:
        snapshot = self.cache.get(test_id)
        if snapshot is None:
            snapshot = self.load(test_id)

        self.cache.put(optimistic_record(snapshot, action, **kwargs))

        try:
            canonical = self.transport.send(
                action,
                test_id,
                expected_version=snapshot.get("version"),
                **kwargs,
            )
        except TransportError as exc:
            self._reconcile(test_id, snapshot)
            raise CommandFailed(exc.kind, exc.message, code=exc.code, details=exc.details) from exc

        self.cache.put(canonical)
        return canonical

    def _reconcile(self, test_id: int, snapshot: Record) -> None:
        try:
            self.cache.put(self.transport.fetch(test_id))
        except TransportError as exc:
            logger.warning("Refetch of visit test %s failed (%s); restoring snapshot.", test_id, exc.message)
            self.cache.put(snapshot)

    # Commands

    def collect_sample(self, test_id: int, specimen_type: str) -> Record:
        return self.execute("collect_sample", test_id, specimen_type=specimen_type)

    def reject_sample(self, test_id: int, reason: str) -> Record:
        return self.execute("reject_sample", test_id, reason=reason)

    def submit_results(self, test_id: int, payload: dict) -> Record:
        return self.execute("submit_results", test_id, payload=payload)

    def approve_result(self, test_id: int) -> Record:
        return self.execute("approve_result", test_id)

    def reject_result(self, test_id: int, reason: str) -> Record:
        return self.execute("reject_result", test_id, reason=reason)

    def edit_result(self, test_id: int, payload: dict, reason: str) -> Record:
        return self.execute("edit_result", test_id, payload=payload, reason=reason)

    def mark_printed(self, test_id: int) -> Record:
        return self.execute("mark_printed", test_id)

    def cancel_test(self, test_id: int, reason: str) -> Record:
        return self.execute("cancel_test", test_id, reason=reason)
