"""
Release pipeline orchestrator.

Ships one commit through
test → quality_scan → provision → build → deploy, one stage at a time.

Key responsibilities:
1. State machine: PENDING → TESTED → SCANNED → PROVISIONED → BUILT → DEPLOYED
2. Correlation IDs: trace_id/run_id attached to all logs, signals and records
3. Isolation: every stage gets its own workspace and only its own secrets
4. Contracts: each stage returns a structured DTO
5. Failure policy: the first failed stage fails the run, downstream stages are
   recorded as skipped, nothing is retried or rolled back
6. Artifacts: discarded when the run ends, whatever the outcome
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from typing import Any, Callable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.artifacts.store import ArtifactStore
from apps.orchestration.dtos import PipelineResult, StageContext, StageError
from apps.orchestration.executors import (
    BaseExecutor,
    BuildExecutor,
    DeployExecutor,
    ProvisionExecutor,
    QualityScanExecutor,
    TestExecutor,
)
from apps.orchestration.models import (
    PipelineRun,
    PipelineStage,
    PipelineStatus,
    StageExecution,
    StageStatus,
    TriggerEventType,
)
from apps.orchestration.signals import (
    SignalTags,
    emit_pipeline_completed,
    emit_pipeline_started,
    emit_stage_failed,
    emit_stage_skipped,
    emit_stage_started,
    emit_stage_succeeded,
)
from apps.toolchain.secret_store import SecretStore
from apps.toolchain.workspace import StageWorkspace
from apps.triggers.drivers.base import ParsedEvent

logger = logging.getLogger(__name__)


# Stage order for the pipeline
STAGE_ORDER = [
    PipelineStage.TEST,
    PipelineStage.QUALITY_SCAN,
    PipelineStage.PROVISION,
    PipelineStage.BUILD,
    PipelineStage.DEPLOY,
]

# Mapping stage to next status after completion
STAGE_TO_STATUS = {
    PipelineStage.TEST: PipelineStatus.TESTED,
    PipelineStage.QUALITY_SCAN: PipelineStatus.SCANNED,
    PipelineStage.PROVISION: PipelineStatus.PROVISIONED,
    PipelineStage.BUILD: PipelineStatus.BUILT,
    PipelineStage.DEPLOY: PipelineStatus.DEPLOYED,
}


class StageExecutionError(Exception):
    """An executor finished but reported errors."""

    def __init__(
        self,
        stage: str,
        errors: list[str],
        error_type: str = "StageExecutionError",
        stack_trace: str | None = None,
        result: Any = None,
    ):
        self.stage = stage
        self.errors = errors
        self.error_type = error_type
        self.stack_trace = stack_trace
        self.result = result
        super().__init__(f"Stage {stage} failed: {'; '.join(errors)}")


def default_workspace_factory(stage: str, run_id: str, secrets: dict[str, str]) -> StageWorkspace:
    return StageWorkspace(
        stage,
        run_id,
        secrets,
        keep=bool(getattr(settings, "PIPELINE_KEEP_WORKSPACES", False)),
    )


class PipelineOrchestrator:
    """
    Drives a run through test, quality_scan, provision, build and deploy.

    Usage:
        orchestrator = PipelineOrchestrator()
        result = orchestrator.run_pipeline(event, source="github")

        # or, for a run created earlier (e.g. before queueing a task):
        run = orchestrator.start_pipeline(event, source="github")
        result = orchestrator.execute_run(run.run_id)
    """

    executors: dict[str, BaseExecutor]

    def __init__(
        self,
        secret_store: SecretStore | None = None,
        artifact_store: ArtifactStore | None = None,
        executors: dict[str, BaseExecutor] | None = None,
        workspace_factory: Callable[..., StageWorkspace] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            secret_store: Where stage secrets come from (default: process environment).
            artifact_store: Run-scoped artifact storage (default: PIPELINE_ARTIFACT_ROOT).
            executors: Per-stage executors, mainly for tests.
            workspace_factory: Callable(stage, run_id, secrets) returning a StageWorkspace.
        """
        self.secret_store = secret_store or SecretStore()
        self.artifact_store = artifact_store or ArtifactStore()
        self.workspace_factory = workspace_factory or default_workspace_factory

        # Initialize executors
        self.executors = executors or {
            PipelineStage.TEST: TestExecutor(self.artifact_store),
            PipelineStage.QUALITY_SCAN: QualityScanExecutor(self.artifact_store),
            PipelineStage.PROVISION: ProvisionExecutor(self.artifact_store),
            PipelineStage.BUILD: BuildExecutor(self.artifact_store),
            PipelineStage.DEPLOY: DeployExecutor(self.artifact_store),
        }

    def start_pipeline(
        self,
        event: ParsedEvent | None = None,
        source: str = "unknown",
        trace_id: str | None = None,
        environment: str | None = None,
    ) -> PipelineRun:
        """
        Create a PENDING pipeline run for an event.

        Without an event, a manual run of the default branch is created.

        Args:
            event: Normalized repository event.
            source: Trigger source (github, generic, cli, api).
            trace_id: Optional trace ID (generated if not provided).
            environment: Environment name (default from settings).

        Returns:
            Created PipelineRun instance.
        """
        if event is None:
            event = ParsedEvent(
                event=TriggerEventType.MANUAL,
                branch=getattr(settings, "PIPELINE_DEFAULT_BRANCH", "main"),
            )
        if trace_id is None:
            trace_id = str(uuid.uuid4())
        if environment is None:
            environment = getattr(settings, "PIPELINE_ENVIRONMENT", "production")

        run_id = str(uuid.uuid4())

        with transaction.atomic():
            pipeline_run = PipelineRun.objects.create(
                trace_id=trace_id,
                run_id=run_id,
                source=source,
                event=event.event,
                branch=event.branch,
                commit_sha=event.commit_sha,
                repository=event.repository
                or getattr(settings, "PIPELINE_SOURCE_REPOSITORY", ""),
                environment=environment,
                status=PipelineStatus.PENDING,
            )

        logger.info(
            f"Pipeline created: trace_id={trace_id}, run_id={run_id}",
            extra={
                "trace_id": trace_id,
                "run_id": run_id,
                "source": source,
                "branch": event.branch,
                "commit_sha": event.commit_sha,
            },
        )

        return pipeline_run

    def run_pipeline(
        self,
        event: ParsedEvent | None = None,
        source: str = "unknown",
        trace_id: str | None = None,
        environment: str | None = None,
    ) -> PipelineResult:
        """
        Create a run for ``event`` and execute it in this process.

        Returns:
            PipelineResult with all stage results.
        """
        pipeline_run = self.start_pipeline(
            event=event,
            source=source,
            trace_id=trace_id,
            environment=environment,
        )
        return self._execute_pipeline(pipeline_run)

    def execute_run(self, run_id: str) -> PipelineResult:
        """
        Execute a run created by start_pipeline().

        Raises:
            ValueError: Unknown run, or the run has already been executed.
        """
        try:
            pipeline_run = PipelineRun.objects.get(run_id=run_id)
        except PipelineRun.DoesNotExist:
            raise ValueError(f"Pipeline run not found: {run_id}")

        # Claim the run in one UPDATE so two workers cannot both start it.
        claimed = PipelineRun.objects.filter(
            run_id=run_id, status=PipelineStatus.PENDING, started_at__isnull=True
        ).update(started_at=timezone.now())
        if claimed != 1:
            raise ValueError(f"Pipeline run {run_id} already executed (status: {pipeline_run.status})")

        pipeline_run.refresh_from_db()
        return self._execute_pipeline(pipeline_run)

    def _execute_pipeline(self, pipeline_run: PipelineRun) -> PipelineResult:
        start_time = time.perf_counter()

        result = PipelineResult(
            trace_id=pipeline_run.trace_id,
            run_id=pipeline_run.run_id,
            status="RUNNING",
        )

        base_tags = SignalTags(
            trace_id=pipeline_run.trace_id,
            run_id=pipeline_run.run_id,
            stage="pipeline",
            source=pipeline_run.source,
            event=pipeline_run.event,
            branch=pipeline_run.branch,
            commit_sha=pipeline_run.commit_sha,
            environment=pipeline_run.environment,
        )

        emit_pipeline_started(base_tags)
        pipeline_run.mark_started(STAGE_ORDER[0])
        result.started_at = pipeline_run.started_at

        previous_results: dict[str, dict[str, Any]] = {}

        try:
            for stage in STAGE_ORDER:
                stage_result = self._execute_stage(pipeline_run, stage, previous_results, base_tags)
                previous_results[stage] = stage_result.to_dict()
                setattr(result, stage, stage_result)

                # Later stages check out exactly the commit that was tested.
                if stage == PipelineStage.TEST and not pipeline_run.commit_sha:
                    pipeline_run.commit_sha = stage_result.commit_sha
                    pipeline_run.save(update_fields=["commit_sha", "updated_at"])
                    base_tags.commit_sha = pipeline_run.commit_sha

                if stage == PipelineStage.DEPLOY:
                    pipeline_run.image_reference = stage_result.image_reference
                    pipeline_run.save(update_fields=["image_reference", "updated_at"])
                    result.image_reference = pipeline_run.image_reference

                pipeline_run.advance_to(STAGE_TO_STATUS[stage], stage)
                result.stages_completed.append(stage)

            duration_ms = (time.perf_counter() - start_time) * 1000
            result.status = "COMPLETED"
            result.total_duration_ms = duration_ms
            pipeline_run.mark_completed(PipelineStatus.DEPLOYED)
            emit_pipeline_completed(base_tags, duration_ms, "COMPLETED")

            logger.info(
                "Pipeline deployed %s",
                pipeline_run.image_reference,
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )

        except StageExecutionError as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            message = str(e)
            result.status = "FAILED"
            result.total_duration_ms = duration_ms
            result.final_error = StageError(
                error_type=e.error_type,
                message=message,
                stage=e.stage,
                stack_trace=e.stack_trace,
            )
            if e.result is not None:
                setattr(result, e.stage, e.result)

            if getattr(e.result, "infrastructure_dirty", False):
                pipeline_run.infrastructure_dirty = True
                pipeline_run.save(update_fields=["infrastructure_dirty", "updated_at"])
                result.infrastructure_dirty = True

            result.stages_skipped = self._skip_downstream(pipeline_run, e.stage, base_tags)
            pipeline_run.mark_failed(error_type=e.error_type, message=message)
            emit_pipeline_completed(base_tags, duration_ms, "FAILED")

            logger.error(
                f"Pipeline failed: {message}",
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )

        except Exception as e:
            # Bookkeeping between stages broke; the run must still end terminal.
            duration_ms = (time.perf_counter() - start_time) * 1000
            result.status = "FAILED"
            result.total_duration_ms = duration_ms
            result.final_error = StageError(
                error_type=type(e).__name__,
                message=str(e),
                stage=pipeline_run.current_stage or "",
                stack_trace=traceback.format_exc(),
            )
            pipeline_run.mark_failed(error_type=type(e).__name__, message=str(e))
            emit_pipeline_completed(base_tags, duration_ms, "FAILED")
            logger.exception(
                f"Pipeline failed unexpectedly: {e}",
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )

        finally:
            result.artifacts_discarded = self._discard_artifacts(pipeline_run)

        result.completed_at = pipeline_run.completed_at
        return result

    def _execute_stage(
        self,
        pipeline_run: PipelineRun,
        stage: str,
        previous_results: dict[str, dict[str, Any]],
        base_tags: SignalTags,
    ):
        """
        Run one stage in its own workspace and record the outcome.

        Returns:
            Stage result DTO.

        Raises:
            StageExecutionError: The stage reported errors or raised.
        """
        stage_execution = StageExecution.objects.create(
            pipeline_run=pipeline_run,
            stage=stage,
            status=StageStatus.PENDING,
        )

        ctx = StageContext(
            trace_id=pipeline_run.trace_id,
            run_id=pipeline_run.run_id,
            stage=stage,
            repository=pipeline_run.repository,
            branch=pipeline_run.branch,
            commit_sha=pipeline_run.commit_sha,
            event=pipeline_run.event,
            environment=pipeline_run.environment,
            source=pipeline_run.source,
            previous_results=previous_results,
            pipeline_run=pipeline_run,
        )
        tags = base_tags.for_stage(stage)

        pipeline_run.advance_to(pipeline_run.status, stage)
        stage_execution.mark_started()
        emit_stage_started(tags)
        start_time = time.perf_counter()

        workspace = None
        try:
            # Resolved before any tool runs; a missing secret fails the stage here.
            secrets = self.secret_store.for_stage(stage)
            with self.workspace_factory(stage, pipeline_run.run_id, secrets) as workspace:
                stage_execution.workspace = str(workspace.path)
                stage_execution.save(update_fields=["workspace"])
                stage_result = self.executors[stage].execute(ctx, workspace)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            stack = traceback.format_exc()
            stage_execution.mark_failed(
                error_type=type(e).__name__,
                error_message=str(e),
                error_stack=stack,
                log_excerpt=workspace.runner.transcript() if workspace else "",
            )
            emit_stage_failed(tags, type(e).__name__, str(e), duration_ms)
            logger.exception(
                f"Stage {stage} raised: {e}",
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )
            raise StageExecutionError(
                stage=stage,
                errors=[str(e)],
                error_type=type(e).__name__,
                stack_trace=stack,
            ) from e

        log_excerpt = workspace.runner.transcript()

        if stage_result.has_errors:
            message = "; ".join(stage_result.errors)
            stage_execution.mark_failed(
                error_type="StageExecutionError",
                error_message=message,
                output_snapshot=stage_result.to_dict(),
                log_excerpt=log_excerpt,
            )
            emit_stage_failed(tags, "StageExecutionError", message, stage_result.duration_ms)
            raise StageExecutionError(stage=stage, errors=stage_result.errors, result=stage_result)

        stage_execution.mark_succeeded(
            output_snapshot=stage_result.to_dict(),
            log_excerpt=log_excerpt,
        )
        emit_stage_succeeded(tags, stage_result.duration_ms)
        return stage_result

    def _skip_downstream(
        self, pipeline_run: PipelineRun, failed_stage: str, base_tags: SignalTags
    ) -> list[str]:
        """Record every stage after ``failed_stage`` as skipped."""
        reason = f"upstream stage {failed_stage} failed"
        skipped = []
        for stage in STAGE_ORDER[STAGE_ORDER.index(failed_stage) + 1 :]:
            stage_execution = StageExecution.objects.create(
                pipeline_run=pipeline_run,
                stage=stage,
                status=StageStatus.PENDING,
            )
            stage_execution.mark_skipped(reason)
            emit_stage_skipped(base_tags.for_stage(stage), reason)
            skipped.append(stage)
        return skipped

    def _discard_artifacts(self, pipeline_run: PipelineRun) -> int:
        try:
            return self.artifact_store.discard_run(pipeline_run)
        except OSError:
            # Left for `manage.py discard_artifacts`.
            logger.exception(
                "Failed to discard artifacts",
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )
            return 0
