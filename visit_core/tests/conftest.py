# visit_core/tests/conftest.py

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from visit_core.actors import resolve_actor
from visit_core.models import TestTemplate, UserRole, Visit, VisitTest
from visit_core.workflows import PENDING


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # DRF's force_authenticate(user=None) calls self.logout() internally.
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


@pytest.fixture
def user_factory(db) -> Callable[..., Any]:
    """
    Users with one LIMS role each; password is always pass123.
    """
    User = get_user_model()

    def _factory(username: str, role: Optional[str] = None, *, superuser: bool = False):
        user, _ = User.objects.get_or_create(
            username=username,
            defaults={"is_staff": superuser, "is_superuser": superuser},
        )
        user.set_password("pass123")
        user.save(update_fields=["password"])
        if role:
            UserRole.objects.get_or_create(user=user, role=role)
        return user

    return _factory


@pytest.fixture
def actor_for():
    return resolve_actor


@pytest.fixture
def phlebotomist(user_factory):
    return resolve_actor(user_factory("phleb1", "PHLEBOTOMY"))


@pytest.fixture
def tech(user_factory):
    return resolve_actor(user_factory("tech1", "LAB"))


@pytest.fixture
def approver(user_factory):
    return resolve_actor(user_factory("dr_rao", "APPROVER"))


@pytest.fixture
def admin(user_factory):
    return resolve_actor(user_factory("admin1", "ADMIN"))


@pytest.fixture
def sudo(user_factory):
    return resolve_actor(user_factory("root", superuser=True))


@pytest.fixture
def receptionist(user_factory):
    return resolve_actor(user_factory("front1", "RECEPTION"))


@pytest.fixture
def cbc_template(db) -> TestTemplate:
    return TestTemplate.objects.create(
        code=_rand("CBC"),
        name="Complete Blood Count",
        category="Haematology",
        sample_type="Whole blood",
        report_type="standard",
        parameters={
            "fields": [
                {"name": "Hemoglobin", "type": "number", "unit": "g/dL"},
                {"name": "Differential", "type": "heading"},
                {"name": "WBC", "type": "number", "unit": "10^3/uL"},
            ]
        },
    )


@pytest.fixture
def culture_template(db) -> TestTemplate:
    return TestTemplate.objects.create(
        code=_rand("URC"),
        name="Urine Culture",
        category="Microbiology",
        sample_type="Urine",
        report_type="culture",
    )


@pytest.fixture
def visit(db) -> Visit:
    return Visit.objects.create(visit_code=_rand("V"), patient_name="Asha Menon")


@pytest.fixture
def visit_test_factory(db, visit, cbc_template) -> Callable[..., VisitTest]:
    """
    Creates a test directly in any state (fixtures are allowed to skip the workflow).
    """

    def _factory(*, status: str = PENDING, template: Optional[TestTemplate] = None, **extra: Any) -> VisitTest:
        return VisitTest.objects.create(
            visit=extra.pop("visit", visit),
            template=template or cbc_template,
            status=status,
            **extra,
        )

    return _factory


@pytest.fixture
def cbc_results() -> dict:
    return {"results": {"Hemoglobin": "13.5", "WBC": "7.2"}}
