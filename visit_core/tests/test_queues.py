import datetime

import pytest
from django.utils import timezone

from visit_core.models import Visit
from visit_core.selectors import queue_sections
from visit_core.workflows import (
    APPROVED,
    AWAITING_APPROVAL,
    CANCELLED,
    IN_PROGRESS,
    PENDING,
    PRINTED,
    REJECTED,
    SAMPLE_COLLECTED,
)


@pytest.fixture
def board(visit_test_factory, cbc_results):
    """One test in every state, plus a returned result."""
    return {
        PENDING: visit_test_factory(status=PENDING),
        REJECTED: visit_test_factory(status=REJECTED, rejection_count=1),
        SAMPLE_COLLECTED: visit_test_factory(status=SAMPLE_COLLECTED),
        IN_PROGRESS: visit_test_factory(status=IN_PROGRESS),
        "returned": visit_test_factory(status=IN_PROGRESS, rejection_count=1),
        AWAITING_APPROVAL: visit_test_factory(status=AWAITING_APPROVAL, **cbc_results),
        APPROVED: visit_test_factory(status=APPROVED, **cbc_results),
        PRINTED: visit_test_factory(status=PRINTED, **cbc_results),
        CANCELLED: visit_test_factory(status=CANCELLED, cancel_reason="duplicate order"),
    }


def _ids(qs):
    return {row.pk for row in qs}


@pytest.mark.django_db
def test_phlebotomy_queue(board):
    sections = queue_sections("phlebotomy")

    assert _ids(sections["pending"]) == {board[PENDING].pk}
    assert _ids(sections["recollection"]) == {board[REJECTED].pk}
    assert _ids(sections["collected"]) == {
        board[SAMPLE_COLLECTED].pk,
        board[IN_PROGRESS].pk,
        board["returned"].pk,
        board[AWAITING_APPROVAL].pk,
        board[APPROVED].pk,
    }


@pytest.mark.django_db
def test_lab_queue_separates_returned_results(board):
    sections = queue_sections("lab")

    assert _ids(sections["pending_results"]) == {board[SAMPLE_COLLECTED].pk}
    assert _ids(sections["result_rejections"]) == {board["returned"].pk}
    assert _ids(sections["processed"]) == {
        board[IN_PROGRESS].pk,
        board[AWAITING_APPROVAL].pk,
        board[APPROVED].pk,
    }
    assert _ids(sections["cancelled"]) == {board[CANCELLED].pk}


@pytest.mark.django_db
def test_approver_queue(board):
    sections = queue_sections(" Approver ")

    assert _ids(sections["awaiting_approval"]) == {board[AWAITING_APPROVAL].pk}
    assert _ids(sections["recently_approved"]) == {board[APPROVED].pk}


@pytest.mark.django_db
def test_queue_scoped_to_visit_and_date(visit_test_factory):
    here = visit_test_factory()
    other_visit = Visit.objects.create(visit_code="V-OTHER", patient_name="Kiran Rao")
    visit_test_factory(visit=other_visit)

    scoped = queue_sections("phlebotomy", visit_id=here.visit_id)
    assert _ids(scoped["pending"]) == {here.pk}

    tomorrow = timezone.localdate() + datetime.timedelta(days=1)
    assert not queue_sections("phlebotomy", since=tomorrow)["pending"].exists()


def test_unknown_queue_is_a_key_error():
    with pytest.raises(KeyError):
        queue_sections("billing")


# ---------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------

@pytest.mark.django_db
def test_queue_endpoint(api_client, user_factory, board):
    user_factory("tech1", "LAB")
    api_client.login("tech1", "pass123")

    res = api_client.get("/lims/queues/lab/")

    assert res.status_code == 200
    body = res.json()
    assert body["queue"] == "lab"
    returned = body["sections"]["result_rejections"]
    assert [row["id"] for row in returned] == [board["returned"].pk]
    assert returned[0]["status"] == IN_PROGRESS


@pytest.mark.django_db
def test_queue_endpoint_errors(api_client, user_factory):
    anonymous = api_client.get("/lims/queues/lab/")
    assert anonymous.status_code == 401

    user_factory("tech1", "LAB")
    api_client.login("tech1", "pass123")

    assert api_client.get("/lims/queues/billing/").status_code == 404

    bad_date = api_client.get("/lims/queues/lab/", {"since": "last tuesday"})
    assert bad_date.status_code == 400
    assert "since" in bad_date.json()["error"]["details"]

    bad_visit = api_client.get("/lims/queues/lab/", {"visit": "V-1"})
    assert bad_visit.status_code == 400
