"""Custom admin site for the release pipeline console."""

import json
from datetime import timedelta

from django.contrib.admin import AdminSite
from django.db.models import Count, Q, Sum
from django.utils import timezone
from django.utils.html import format_html


def prettify_json(value) -> str:
    """Render a JSON-serializable value as an indented <pre> block."""
    if value in (None, "", {}, []):
        return "-"
    return format_html(
        '<pre style="white-space:pre-wrap;margin:0;">{}</pre>',
        json.dumps(value, indent=2, sort_keys=True, default=str),
    )


class PipelineAdminSite(AdminSite):
    site_header = "Release Pipeline"
    site_title = "Release Pipeline"
    index_title = "Dashboard"
    index_template = "admin/dashboard.html"

    def index(self, request, extra_context=None):
        extra_context = extra_context or {}
        extra_context.update(self._get_dashboard_context())
        return super().index(request, extra_context=extra_context)

    def _get_dashboard_context(self):
        from apps.artifacts.models import Artifact
        from apps.orchestration.models import (
            PipelineRun,
            PipelineStatus,
            StageExecution,
            StageStatus,
        )

        now = timezone.now()
        last_24h = now - timedelta(hours=24)
        last_7d = now - timedelta(days=7)

        # --- Pipeline Health (24h) ---
        pipeline_qs = PipelineRun.objects.filter(created_at__gte=last_24h)
        status_counts = dict(
            pipeline_qs.values_list("status")
            .annotate(count=Count("id"))
            .values_list("status", "count")
        )
        total_runs = sum(status_counts.values())
        successful = status_counts.get(PipelineStatus.DEPLOYED, 0)
        in_flight_statuses = [
            PipelineStatus.PENDING,
            PipelineStatus.TESTED,
            PipelineStatus.SCANNED,
            PipelineStatus.PROVISIONED,
            PipelineStatus.BUILT,
        ]
        pipeline_health = {
            "total": total_runs,
            "successful": successful,
            "failed": status_counts.get(PipelineStatus.FAILED, 0),
            "in_flight": sum(status_counts.get(s, 0) for s in in_flight_statuses),
            "success_rate": round(successful / total_runs * 100, 1) if total_runs else 0,
        }

        # --- Recent deployments (last 10) ---
        recent_deployments = list(
            PipelineRun.objects.filter(status=PipelineStatus.DEPLOYED)
            .order_by("-completed_at")
            .only("run_id", "branch", "commit_sha", "image_reference", "completed_at")[:10]
        )

        # --- Failed Pipelines (last 5) ---
        failed_pipelines = list(
            PipelineRun.objects.filter(status=PipelineStatus.FAILED)
            .order_by("-created_at")
            .only(
                "id",
                "run_id",
                "trace_id",
                "current_stage",
                "infrastructure_dirty",
                "last_error_type",
                "last_error_message",
                "created_at",
            )[:5]
        )
        dirty_infrastructure = PipelineRun.objects.filter(infrastructure_dirty=True).count()

        # --- 7-Day Aggregations ---
        failing_stages = list(
            StageExecution.objects.filter(
                status=StageStatus.FAILED,
                pipeline_run__created_at__gte=last_7d,
            )
            .values("stage")
            .annotate(count=Count("id"))
            .order_by("-count")[:5]
        )

        top_error_types = list(
            PipelineRun.objects.filter(
                status=PipelineStatus.FAILED,
                created_at__gte=last_7d,
            )
            .values("last_error_type")
            .annotate(count=Count("id"))
            .order_by("-count")[:5]
        )

        artifact_usage = Artifact.objects.aggregate(
            stored=Count("id", filter=Q(discarded_at__isnull=True)),
            stored_bytes=Sum("size_bytes", filter=Q(discarded_at__isnull=True)),
        )

        return {
            "pipeline_health": pipeline_health,
            "recent_deployments": recent_deployments,
            "failed_pipelines": failed_pipelines,
            "dirty_infrastructure": dirty_infrastructure,
            "failing_stages": failing_stages,
            "top_error_types": top_error_types,
            "artifact_usage": {
                "stored": artifact_usage["stored"] or 0,
                "stored_bytes": artifact_usage["stored_bytes"] or 0,
            },
        }
