"""
Celery task definitions.

Each task encapsulates one unit of background work. API processes
dispatch exports via ``.delay()``; the Celery worker runs them one
after another, each export fully fetching its data before rendering.

Single Responsibility: tasks only bridge the queue boundary — the
export logic stays in ``export.orchestrator``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from shop_reports.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="export_report")
def export_report(
    self,
    kind: str,
    fmt: str,
    filters: Optional[dict[str, Any]] = None,
) -> dict:
    """Run one export and return the artifact as a JSON-safe dict.

    Client mistakes (unsupported format/kind, bad filter values) are
    returned as ``{"error": ...}`` so callers can show them; server-side
    failures are re-raised and recorded by Celery as task failures.
    """
    from shop_reports.export.errors import ExportError
    from shop_reports.export.orchestrator import export_report as run_export

    task_id = self.request.id
    logger.info("Starting %s export as %s (task %s)", kind, fmt, task_id)

    try:
        artifact = run_export(kind, fmt, filters or {}, request_id=task_id)
    except ExportError as exc:
        if exc.status_code < 500:
            logger.warning("Rejected %s export (task %s): %s", kind, task_id, exc)
            return {"kind": kind, "format": fmt, **exc.to_dict()}
        raise

    logger.info(
        "%s export complete — %s (%d rows, task %s)",
        kind, artifact.filename, artifact.row_count, task_id,
    )
    return artifact.to_dict()
