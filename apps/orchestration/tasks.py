"""Celery tasks for pipeline orchestration.

These tasks wrap the PipelineOrchestrator for async execution via Celery.
Stages are never retried, so neither are the tasks.
"""

from __future__ import annotations

from typing import Any

from celery import shared_task


@shared_task(bind=True)
def run_pipeline_task(self, run_id: str) -> dict[str, Any]:
    """
    Celery task to execute a pipeline run created by start_pipeline().

    Args:
        run_id: Pipeline run ID.

    Returns:
        PipelineResult as dict.
    """
    from apps.orchestration.orchestrator import PipelineOrchestrator

    orchestrator = PipelineOrchestrator()
    result = orchestrator.execute_run(run_id)
    return result.to_dict()


@shared_task(bind=True)
def discard_stale_artifacts_task(self) -> int:
    """
    Celery task to discard artifacts of finished runs left behind by a crashed worker.

    Returns:
        Number of artifacts discarded.
    """
    from apps.artifacts.store import ArtifactStore

    store = ArtifactStore()
    return sum(store.discard_run(run) for run in store.stale_runs())
