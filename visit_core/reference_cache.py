# visit_core/reference_cache.py
"""
TTL cache for reference data (test catalog, antibiotics).

Backed by Django's cache framework with a per-key TTL from
settings.REFERENCE_CACHE_TTLS. Visit-test rows are never cached here.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

KEY_PREFIX = "visit_core:ref:"
DEFAULT_TTL = 60 * 60


def _load_templates() -> List[dict]:
    from visit_core.models import TestTemplate
    from visit_core.serializers import TestTemplateSerializer

    qs = TestTemplate.objects.filter(is_active=True).order_by("code")
    return [dict(row) for row in TestTemplateSerializer(qs, many=True).data]


def _load_antibiotics() -> List[dict]:
    from visit_core.models import Antibiotic
    from visit_core.serializers import AntibioticSerializer

    qs = Antibiotic.objects.filter(is_active=True).order_by("name")
    return [dict(row) for row in AntibioticSerializer(qs, many=True).data]


LOADERS: Dict[str, Callable[[], List[dict]]] = {
    "test-templates": _load_templates,
    "antibiotics": _load_antibiotics,
}


def ttl_for(key: str) -> int:
    ttls = getattr(settings, "REFERENCE_CACHE_TTLS", {}) or {}
    return int(ttls.get(key, DEFAULT_TTL))


def get_reference(key: str, *, force_refresh: bool = False) -> List[dict]:
    """
    Cached list for a reference key. Raises KeyError for unknown keys.
    """
    loader = LOADERS[key]
    cache_key = KEY_PREFIX + key

    if not force_refresh:
        data = cache.get(cache_key)
        if data is not None:
            return data

    data = loader()
    cache.set(cache_key, data, ttl_for(key))
    logger.debug("Reference cache refreshed: %s (%s rows)", key, len(data))
    return data


def invalidate(key: Optional[str] = None) -> None:
    keys = [key] if key else list(LOADERS)
    cache.delete_many([KEY_PREFIX + k for k in keys])
