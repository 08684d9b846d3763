"""
Settings for the pytest run: SQLite, eager Celery, fast hashing.
"""
import os

os.environ.setdefault("DJANGO_ENV", "test")

from diag_lims.settings import *  # noqa: F401, F403,E402

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False

VISIT_AUDIT_MODE = "best_effort"
