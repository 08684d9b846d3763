import copy

import pytest

from visit_core.coordinator import (
    KIND_NETWORK,
    KIND_SERVER,
    KIND_VALIDATION,
    ApiTransport,
    CommandFailed,
    Coordinator,
    RecordCache,
    ServiceTransport,
    Transport,
    TransportError,
    optimistic_record,
)
from visit_core.models import VisitTest
from visit_core.workflows import (
    APPROVED,
    AWAITING_APPROVAL,
    IN_PROGRESS,
    PENDING,
    REJECTED,
    SAMPLE_COLLECTED,
)


def _record(**overrides):
    record = {
        "id": 7,
        "status": PENDING,
        "version": 1,
        "results": None,
        "culture_result": None,
        "rejection_count": 0,
        "rejection_kind": None,
        "specimen_type": "",
        "cancel_reason": "",
    }
    record.update(overrides)
    return record


class FakeTransport(Transport):
    """In-memory server; `fail_send` / `fail_fetch` hold the TransportError to raise."""

    def __init__(self, record):
        self.server = copy.deepcopy(record)
        self.fail_send = None
        self.fail_fetch = None
        self.sent = []

    def fetch(self, test_id):
        if self.fail_fetch:
            raise self.fail_fetch
        return copy.deepcopy(self.server)

    def send(self, action, test_id, **kwargs):
        self.sent.append((action, test_id, kwargs))
        if self.fail_send:
            raise self.fail_send
        record = optimistic_record(self.server, action, **{k: v for k, v in kwargs.items() if k != "expected_version"})
        record["version"] = self.server["version"] + 1
        record["approved_by"] = "server"
        self.server = record
        return copy.deepcopy(record)


# ---------------------------------------------------------------
# Optimistic transforms
# ---------------------------------------------------------------

def test_optimistic_record_does_not_mutate_input():
    record = _record(status=AWAITING_APPROVAL, results={"Hemoglobin": "13"})
    before = copy.deepcopy(record)

    out = optimistic_record(record, "reject_result", reason="recheck")

    assert record == before
    assert out["status"] == IN_PROGRESS
    assert out["results"] is None
    assert out["rejection_count"] == 1
    assert out["rejection_kind"] == "result"


def test_optimistic_submit_keeps_a_single_payload_side():
    record = _record(status=SAMPLE_COLLECTED, results={"stale": "1"})

    out = optimistic_record(record, "submit_results", payload={"culture_result": {"growth_status": "no_growth"}})

    assert out["status"] == AWAITING_APPROVAL
    assert out["results"] is None
    assert out["culture_result"] == {"growth_status": "no_growth"}


def test_optimistic_sample_rejection_counts():
    out = optimistic_record(_record(status=SAMPLE_COLLECTED, rejection_count=2), "reject_sample", reason="clotted")

    assert out["status"] == REJECTED
    assert out["rejection_count"] == 3
    assert out["rejection_kind"] == "sample"


# ---------------------------------------------------------------
# Cache
# ---------------------------------------------------------------

def test_cache_returns_copies_and_notifies_observers():
    cache = RecordCache()
    seen = []
    unsubscribe = cache.subscribe(lambda record: seen.append(record["status"]))

    cache.put(_record())
    fetched = cache.get(7)
    fetched["status"] = "TAMPERED"

    assert cache.get(7)["status"] == PENDING
    assert seen == [PENDING]
    assert 7 in cache and len(cache) == 1

    unsubscribe()
    cache.put(_record(status=SAMPLE_COLLECTED))
    assert seen == [PENDING]


def test_failing_observer_does_not_break_the_cache():
    cache = RecordCache()
    seen = []

    def broken(record):
        raise RuntimeError("render failed")

    cache.subscribe(broken)
    cache.subscribe(lambda record: seen.append(record["id"]))

    cache.put(_record())

    assert seen == [7]
    assert cache.get(7)["status"] == PENDING


# ---------------------------------------------------------------
# Coordinator with an in-memory transport
# ---------------------------------------------------------------

def test_execute_shows_optimistic_then_canonical_record():
    transport = FakeTransport(_record())
    coordinator = Coordinator(transport)
    statuses = []
    coordinator.cache.subscribe(lambda record: statuses.append((record["status"], record["version"])))

    out = coordinator.collect_sample(7, "Serum")

    # load, optimistic, canonical
    assert statuses == [(PENDING, 1), (SAMPLE_COLLECTED, 1), (SAMPLE_COLLECTED, 2)]
    assert out["approved_by"] == "server"
    assert coordinator.cache.get(7) == out
    assert transport.sent == [("collect_sample", 7, {"expected_version": 1, "specimen_type": "Serum"})]


def test_failure_refetches_the_server_record():
    transport = FakeTransport(_record(status=AWAITING_APPROVAL))
    coordinator = Coordinator(transport)
    coordinator.load(7)

    # someone else approved meanwhile
    transport.server.update(status=APPROVED, version=2)
    transport.fail_send = TransportError(KIND_VALIDATION, "Test #7 is APPROVED", code="stale_state")

    with pytest.raises(CommandFailed) as exc:
        coordinator.reject_result(7, "recheck")

    assert exc.value.kind == KIND_VALIDATION
    assert exc.value.code == "stale_state"
    assert coordinator.cache.get(7)["status"] == APPROVED
    assert coordinator.cache.get(7)["version"] == 2


def test_failure_restores_snapshot_when_refetch_fails():
    transport = FakeTransport(_record(status=AWAITING_APPROVAL, results={"Hemoglobin": "13"}))
    coordinator = Coordinator(transport)
    snapshot = coordinator.load(7)

    transport.fail_send = TransportError(KIND_NETWORK, "Network error: timed out")
    transport.fail_fetch = TransportError(KIND_NETWORK, "Network error: timed out")

    with pytest.raises(CommandFailed) as exc:
        coordinator.approve_result(7)

    assert exc.value.kind == KIND_NETWORK
    assert coordinator.cache.get(7) == snapshot


def test_failed_load_is_reported_as_command_failure():
    transport = FakeTransport(_record())
    transport.fail_fetch = TransportError(KIND_SERVER, "Request failed with status 503.")
    coordinator = Coordinator(transport)

    with pytest.raises(CommandFailed) as exc:
        coordinator.approve_result(7)

    assert exc.value.kind == KIND_SERVER
    assert transport.sent == []
    assert 7 not in coordinator.cache


# ---------------------------------------------------------------
# In-process transport against the executor
# ---------------------------------------------------------------

@pytest.mark.django_db
def test_service_transport_round_trip(phlebotomist, visit_test_factory):
    test = visit_test_factory()
    coordinator = Coordinator(ServiceTransport(phlebotomist))

    out = coordinator.collect_sample(test.pk, "Serum")

    assert out["status"] == SAMPLE_COLLECTED
    assert out["version"] == 2
    assert out["collected_by"] == "phleb1"
    assert VisitTest.objects.get(pk=test.pk).status == SAMPLE_COLLECTED


@pytest.mark.django_db
def test_two_coordinators_racing_an_approval(approver, admin, visit_test_factory, cbc_results):
    test = visit_test_factory(status=AWAITING_APPROVAL, **cbc_results)
    first = Coordinator(ServiceTransport(approver))
    second = Coordinator(ServiceTransport(admin))
    first.load(test.pk)
    second.load(test.pk)

    first.approve_result(test.pk)
    with pytest.raises(CommandFailed) as exc:
        second.approve_result(test.pk)

    assert exc.value.kind == KIND_VALIDATION
    assert exc.value.code == "stale_state"
    reconciled = second.cache.get(test.pk)
    assert reconciled["status"] == APPROVED
    assert reconciled["approved_by"] == "dr_rao"


@pytest.mark.django_db
def test_service_transport_reports_missing_tests(approver):
    coordinator = Coordinator(ServiceTransport(approver))

    with pytest.raises(CommandFailed) as exc:
        coordinator.load(424242)

    assert exc.value.code == "not_found"


# ---------------------------------------------------------------
# REST transport
# ---------------------------------------------------------------

class _Response:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


@pytest.mark.django_db
def test_api_transport_round_trip(api_client, user_factory, visit_test_factory, cbc_results):
    user_factory("tech1", "LAB")
    api_client.login("tech1", "pass123")
    test = visit_test_factory(status=SAMPLE_COLLECTED)
    coordinator = Coordinator(ApiTransport(api_client))

    out = coordinator.submit_results(test.pk, cbc_results)

    assert out["status"] == AWAITING_APPROVAL
    assert out["results"] == cbc_results["results"]
    assert out["entered_by"] == "tech1"


@pytest.mark.django_db
def test_api_transport_maps_permission_refusal(api_client, user_factory, visit_test_factory):
    user_factory("front1", "RECEPTION")
    api_client.login("front1", "pass123")
    test = visit_test_factory()
    coordinator = Coordinator(ApiTransport(api_client))

    with pytest.raises(CommandFailed) as exc:
        coordinator.cancel_test(test.pk, "duplicate order placed")

    assert exc.value.kind == KIND_VALIDATION
    assert exc.value.code == "permission_denied"
    assert coordinator.cache.get(test.pk)["status"] == PENDING


def test_api_transport_maps_server_errors():
    class Client:
        def get(self, path):
            return _Response(200, _record(status=AWAITING_APPROVAL))

        def post(self, path, data, format=None):
            return _Response(
                503,
                {"error": {"code": "persistence_error", "message": "Could not save the change.", "details": None}},
            )

    coordinator = Coordinator(ApiTransport(Client()))

    with pytest.raises(CommandFailed) as exc:
        coordinator.approve_result(7)

    assert exc.value.kind == KIND_SERVER
    assert exc.value.code == "persistence_error"
    assert coordinator.cache.get(7)["status"] == AWAITING_APPROVAL


def test_api_transport_maps_network_errors():
    class Client:
        def __init__(self):
            self.calls = 0

        def get(self, path):
            self.calls += 1
            if self.calls > 1:
                raise ConnectionError("connection refused")
            return _Response(200, _record(status=AWAITING_APPROVAL))

        def post(self, path, data, format=None):
            raise ConnectionError("connection refused")

    coordinator = Coordinator(ApiTransport(Client()))

    with pytest.raises(CommandFailed) as exc:
        coordinator.approve_result(7)

    assert exc.value.kind == KIND_NETWORK
    # refetch failed too; snapshot restored
    assert coordinator.cache.get(7)["status"] == AWAITING_APPROVAL


def test_api_transport_builds_command_urls_and_bodies():
    transport = ApiTransport(client=None, base_path="/lims")

    assert transport._url(5) == "/lims/visit-tests/5/"
    assert transport._url(5, "approve_result") == "/lims/visit-tests/5/approve/"
    assert transport._body(
        {"payload": {"results": {"WBC": "7"}}, "reason": "typo", "expected_version": None}
    ) == {"results": {"WBC": "7"}, "reason": "typo"}
