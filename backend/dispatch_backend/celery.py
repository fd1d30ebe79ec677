"""
Celery configuration for the dispatch backend.

Only customer notification emails run on workers. Request dispatch stays in
the web process because mechanic presence lives there.
"""

import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dispatch_backend.settings.settings')

app = Celery('dispatch_backend')

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
