"""Celery application for the TaskScout service."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "taskscout_service.settings")

app = Celery("taskscout_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
