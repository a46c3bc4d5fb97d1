"""
Celery app that runs report exports off the request path.

A caller enqueues ``export_report(kind, fmt, filters)`` and later reads
the artifact metadata back from the result backend. Both broker and
backend live on ``REDIS_URL``. Results carry metadata only; the export
file itself stays in ``EXPORT_DIR``.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger

from shop_reports.infra.config import get_settings

_settings = get_settings()

celery_app = Celery(
    "shop_reports",
    broker=_settings.redis_url,
    backend=_settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Artifact metadata is only useful while the file is still on disk.
    result_expires=3600,
    task_track_started=True,
    worker_hijack_root_logger=False,
)

if _settings.export_timeout > 0:
    # Hard stop shortly after the in-process export deadline.
    celery_app.conf.task_time_limit = int(_settings.export_timeout) + 30


@after_setup_logger.connect
def _setup_export_logger(logger: logging.Logger, loglevel: int, **kwargs):
    """Send ``shop_reports.*`` records to the worker's handlers at the
    worker's ``--loglevel``."""
    export_logger = logging.getLogger("shop_reports")
    export_logger.setLevel(loglevel)
    for handler in logger.handlers:
        export_logger.addHandler(handler)


celery_app.autodiscover_tasks(["shop_reports.worker"])
