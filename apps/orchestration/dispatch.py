"""
Queue a pipeline run on Celery, or run it inline when that is not possible.

Shared by the orchestration API and the trigger webhook.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from django.conf import settings

from apps.orchestration.models import PipelineRun
from apps.orchestration.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


def dispatch_run(pipeline_run: PipelineRun) -> tuple[bool, dict[str, Any]]:
    """
    Hand a PENDING run to a worker.

    Celery is used unless ENABLE_CELERY_ORCHESTRATION=0 or tasks run eagerly
    (tests/dev). If the broker is unreachable the run executes synchronously
    instead of failing the request.

    Returns:
        (queued, data): ``queued`` is True when a task was enqueued; ``data``
        holds the task id or the PipelineResult dict.
    """
    celery_eager = bool(getattr(settings, "CELERY_TASK_ALWAYS_EAGER", False))

    if os.environ.get("ENABLE_CELERY_ORCHESTRATION", "1") == "1" and not celery_eager:
        try:
            from apps.orchestration.tasks import run_pipeline_task

            async_res = run_pipeline_task.delay(pipeline_run.run_id)
            return True, {"task_id": async_res.id}
        except Exception as enqueue_err:
            # Broker/result backend down: don't fail the trigger.
            logger.warning(
                "Celery enqueue failed; running pipeline synchronously: %s",
                enqueue_err,
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )

    result = PipelineOrchestrator().execute_run(pipeline_run.run_id)
    return False, result.to_dict()
