# diag_lims/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "diag_lims.settings")

app = Celery("diag_lims")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
