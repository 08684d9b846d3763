# visit_core/signals.py
from __future__ import annotations

import logging
from threading import local

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from visit_core.models import Antibiotic, RejectionRecord, TestTemplate
from visit_core.reference_cache import invalidate

logger = logging.getLogger(__name__)

# ===============================================================
# Thread-local request id (for log lines outside the request path)
# ===============================================================
_state = local()


def set_request_context(request_id=None):
    _state.request_id = request_id


def get_request_id():
    return getattr(_state, "request_id", None)


# ===============================================================
# Rejections
# ===============================================================
@receiver(post_save, sender=RejectionRecord)
def log_rejection(sender, instance, created, **kwargs):
    if created:
        logger.info(
            "%s rejection recorded for visit test %s by %s [request %s]: %s",
            instance.kind,
            instance.visit_test_id,
            instance.rejected_by_username,
            get_request_id() or "-",
            instance.reason,
        )


# ===============================================================
# Reference data cache
# ===============================================================
@receiver(post_save, sender=TestTemplate)
@receiver(post_delete, sender=TestTemplate)
def invalidate_templates(sender, **kwargs):
    invalidate("test-templates")


@receiver(post_save, sender=Antibiotic)
@receiver(post_delete, sender=Antibiotic)
def invalidate_antibiotics(sender, **kwargs):
    invalidate("antibiotics")
