import pytest
from django.core.cache import cache

from visit_core import reference_cache
from visit_core.models import Antibiotic, TestTemplate
from visit_core.reference_cache import KEY_PREFIX, get_reference, invalidate, ttl_for


@pytest.mark.django_db
def test_reference_data_is_served_from_cache(django_assert_num_queries):
    Antibiotic.objects.create(code="AMK", name="Amikacin")

    with django_assert_num_queries(1):
        first = get_reference("antibiotics")
    with django_assert_num_queries(0):
        second = get_reference("antibiotics")

    assert first == second
    assert [row["code"] for row in first] == ["AMK"]


@pytest.mark.django_db
def test_inactive_rows_are_left_out():
    Antibiotic.objects.create(code="AMK", name="Amikacin")
    Antibiotic.objects.create(code="CHL", name="Chloramphenicol", is_active=False)

    assert [row["code"] for row in get_reference("antibiotics")] == ["AMK"]


@pytest.mark.django_db
def test_saving_a_template_invalidates_its_key():
    TestTemplate.objects.create(code="CBC", name="Complete Blood Count")
    Antibiotic.objects.create(code="AMK", name="Amikacin")
    get_reference("test-templates")
    get_reference("antibiotics")

    TestTemplate.objects.create(code="LFT", name="Liver Function Test")

    assert cache.get(KEY_PREFIX + "test-templates") is None
    assert cache.get(KEY_PREFIX + "antibiotics") is not None
    assert [row["code"] for row in get_reference("test-templates")] == ["CBC", "LFT"]


@pytest.mark.django_db
def test_deleting_an_antibiotic_invalidates_its_key():
    amk = Antibiotic.objects.create(code="AMK", name="Amikacin")
    get_reference("antibiotics")

    amk.delete()

    assert get_reference("antibiotics") == []


@pytest.mark.django_db
def test_force_refresh_skips_the_cache(monkeypatch):
    calls = []
    monkeypatch.setitem(reference_cache.LOADERS, "antibiotics", lambda: calls.append(1) or [])

    get_reference("antibiotics")
    get_reference("antibiotics")
    get_reference("antibiotics", force_refresh=True)

    assert len(calls) == 2


def test_invalidate_all_keys():
    cache.set(KEY_PREFIX + "test-templates", [{"code": "CBC"}])
    cache.set(KEY_PREFIX + "antibiotics", [{"code": "AMK"}])

    invalidate()

    assert cache.get(KEY_PREFIX + "test-templates") is None
    assert cache.get(KEY_PREFIX + "antibiotics") is None


def test_ttl_comes_from_settings(settings):
    settings.REFERENCE_CACHE_TTLS = {"antibiotics": 30}

    assert ttl_for("antibiotics") == 30
    assert ttl_for("test-templates") == reference_cache.DEFAULT_TTL


def test_unknown_key_is_a_key_error():
    with pytest.raises(KeyError):
        get_reference("patients")
