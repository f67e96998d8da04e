"""
Celery app for webhook processing, reconciliation sweeps and operator alerts.

    celery -A config worker -l info
    celery -A config beat -l info

Beat reads CELERY_BEAT_SCHEDULE into django-celery-beat's tables.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("bounce_party_payments")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
