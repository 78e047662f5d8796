"""
Celery configuration for the Registration Platform.

Sets up Celery for the scheduled lottery jobs and notification dispatch,
using a Redis broker.
"""

import os
from celery import Celery

# Set default Django settings module
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "registration_platform.settings")

app = Celery("registration_platform")

# Load config from Django settings with CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
app.autodiscover_tasks()
