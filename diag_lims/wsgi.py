"""
WSGI config for diag_lims project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'diag_lims.settings')
application = get_wsgi_application()
