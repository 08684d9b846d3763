# visit_core/apps.py

from django.apps import AppConfig


class VisitCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "visit_core"
    verbose_name = "Visit test lifecycle"

    def ready(self):
        from . import signals  # noqa
