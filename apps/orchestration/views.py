"""
Views for the orchestration app.

Manual runs, run status and run listing over JSON.
"""

import json
import logging
from typing import Any

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.orchestration.dispatch import dispatch_run
from apps.orchestration.models import PipelineRun, TriggerEventType
from apps.orchestration.orchestrator import PipelineOrchestrator
from apps.triggers.drivers.base import ParsedEvent
from apps.triggers.rules import TriggerRule

logger = logging.getLogger(__name__)


class JSONResponseMixin:
    """Mixin for JSON responses."""

    def json_response(self, data: Any, status: int = 200) -> JsonResponse:
        return JsonResponse(data, status=status)

    def error_response(self, message: str, status: int = 400) -> JsonResponse:
        return JsonResponse({"error": message}, status=status)


@method_decorator(csrf_exempt, name="dispatch")
class PipelineView(JSONResponseMixin, View):
    """
    API endpoint for triggering manual pipeline runs.

    POST /orchestration/pipeline/
        Create a run and queue it.

    POST /orchestration/pipeline/sync/
        Create a run and wait for it to finish.

    Request body (all optional):
    {
        "branch": "main",
        "commit_sha": "abc123",
        "repository": "https://github.com/org/repo.git",
        "environment": "production",
        "trace_id": "...",
        "force": false  // skip the release-branch check
    }
    """

    def post(self, request, mode: str = "async"):
        """Start a manual run for the branch (and optional commit) in the body."""
        try:
            body = json.loads(request.body) if request.body else {}
        except json.JSONDecodeError:
            return self.error_response("Invalid JSON body", status=400)
        if not isinstance(body, dict):
            return self.error_response("Request body must be a JSON object", status=400)

        from django.conf import settings

        event = ParsedEvent(
            event=TriggerEventType.MANUAL,
            branch=body.get("branch") or getattr(settings, "PIPELINE_DEFAULT_BRANCH", "main"),
            commit_sha=body.get("commit_sha", ""),
            repository=body.get("repository", ""),
            source="api",
        )

        decision = TriggerRule.from_settings().evaluate(event, force=bool(body.get("force")))
        if not decision.should_run:
            return self.json_response({"status": "ignored", "reason": decision.reason})

        orchestrator = PipelineOrchestrator()
        pipeline_run = orchestrator.start_pipeline(
            event=event,
            source=body.get("source", "api"),
            trace_id=body.get("trace_id"),
            environment=body.get("environment"),
        )

        if mode == "sync":
            result = orchestrator.execute_run(pipeline_run.run_id)
            return self.json_response(result.to_dict())

        queued, data = dispatch_run(pipeline_run)
        if not queued:
            return self.json_response(data)
        return self.json_response(
            {
                "status": "queued",
                "trace_id": pipeline_run.trace_id,
                "run_id": pipeline_run.run_id,
                "task_id": data["task_id"],
                "message": "Run queued; poll the status endpoint for progress",
            },
            status=202,
        )


def _isoformat(value):
    return value.isoformat() if value else None


@method_decorator(csrf_exempt, name="dispatch")
class PipelineStatusView(JSONResponseMixin, View):
    """
    Run detail with stage executions and artifacts.

    GET /orchestration/pipeline/<run_id>/
        Get status of a pipeline run with its stages and artifacts.
    """

    def get(self, request, run_id: str):
        """Get pipeline run status."""
        try:
            pipeline_run = PipelineRun.objects.get(run_id=run_id)
        except PipelineRun.DoesNotExist:
            return self.error_response(f"Pipeline run not found: {run_id}", status=404)

        stage_executions = list(
            pipeline_run.stage_executions.values(
                "stage",
                "status",
                "started_at",
                "completed_at",
                "duration_ms",
                "error_type",
                "error_message",
            )
        )
        artifacts = list(
            pipeline_run.artifacts.values(
                "name",
                "producer_stage",
                "consumer_stage",
                "size_bytes",
                "sha256",
                "uploaded_at",
                "consumed_at",
                "discarded_at",
            )
        )

        return self.json_response(
            {
                "trace_id": pipeline_run.trace_id,
                "run_id": pipeline_run.run_id,
                "status": pipeline_run.status,
                "current_stage": pipeline_run.current_stage,
                "source": pipeline_run.source,
                "event": pipeline_run.event,
                "branch": pipeline_run.branch,
                "commit_sha": pipeline_run.commit_sha,
                "environment": pipeline_run.environment,
                "image_reference": pipeline_run.image_reference,
                "infrastructure_dirty": pipeline_run.infrastructure_dirty,
                "created_at": pipeline_run.created_at.isoformat(),
                "started_at": _isoformat(pipeline_run.started_at),
                "completed_at": _isoformat(pipeline_run.completed_at),
                "total_duration_ms": pipeline_run.total_duration_ms,
                "last_error": (
                    {
                        "type": pipeline_run.last_error_type,
                        "message": pipeline_run.last_error_message,
                    }
                    if pipeline_run.last_error_type
                    else None
                ),
                "stage_executions": stage_executions,
                "artifacts": artifacts,
            }
        )


@method_decorator(csrf_exempt, name="dispatch")
class PipelineListView(JSONResponseMixin, View):
    """
    Recent runs, newest first.

    GET /orchestration/pipelines/
        List recent pipeline runs.

    Query params:
        status: Filter by status (pending, tested, scanned, provisioned, built, deployed, failed)
        branch: Filter by branch
        source: Filter by source
        limit: Max results (default 50)
    """

    def get(self, request):
        """List pipeline runs."""
        status = request.GET.get("status")
        branch = request.GET.get("branch")
        source = request.GET.get("source")
        try:
            limit = int(request.GET.get("limit", 50))
        except ValueError:
            return self.error_response("limit must be an integer", status=400)

        queryset = PipelineRun.objects.all()

        if status:
            queryset = queryset.filter(status=status)
        if branch:
            queryset = queryset.filter(branch=branch)
        if source:
            queryset = queryset.filter(source=source)

        queryset = queryset.order_by("-created_at")[:limit]

        runs = [
            {
                "trace_id": run.trace_id,
                "run_id": run.run_id,
                "status": run.status,
                "current_stage": run.current_stage,
                "source": run.source,
                "event": run.event,
                "branch": run.branch,
                "commit_sha": run.commit_sha,
                "image_reference": run.image_reference,
                "created_at": run.created_at.isoformat(),
                "total_duration_ms": run.total_duration_ms,
            }
            for run in queryset
        ]

        return self.json_response({"count": len(runs), "runs": runs})
