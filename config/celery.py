"""Celery application bootstrap for the release pipeline.

Pipeline runs triggered by webhooks are executed by a worker so the webhook
can answer immediately:
test → quality_scan → provision → build → deploy.

Run a worker with something like:
- celery -A config worker -l info --concurrency 1

A single-process worker keeps runs from overlapping on the same build host.
Broker/result backend are configured via Django settings (see config/settings.py).
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("release-pipeline")

# Load Celery config from Django settings using CELERY_* namespace.
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
