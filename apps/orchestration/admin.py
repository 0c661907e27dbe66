"""Admin for pipeline runs, their stages and artifacts."""

from django.contrib import admin
from django.db import models as db_models
from django.utils.html import format_html
from django.utils.safestring import mark_safe
from django_json_widget.widgets import JSONEditorWidget
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.artifacts.models import Artifact
from apps.orchestration.models import (
    PipelineRun,
    PipelineStage,
    StageExecution,
    StageStatus,
)
from config.admin import prettify_json

STAGE_ICONS = {
    StageStatus.SUCCEEDED: ("#28a745", "✓"),
    StageStatus.RUNNING: ("#ffc107", "●"),
    StageStatus.FAILED: ("#dc3545", "✗"),
    StageStatus.SKIPPED: ("#6c757d", "⤼"),
}
NOT_REACHED = ("#ccc", "○")


class StageExecutionInline(admin.TabularInline):
    """One row per stage; read-only."""

    model = StageExecution
    extra = 0
    readonly_fields = [
        "stage",
        "status",
        "started_at",
        "completed_at",
        "duration_ms",
        "error_type",
        "error_message",
    ]
    fields = readonly_fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class ArtifactInline(admin.TabularInline):
    """Artifacts handed between the stages of a run."""

    model = Artifact
    extra = 0
    readonly_fields = [
        "name",
        "producer_stage",
        "consumer_stage",
        "size_bytes",
        "uploaded_at",
        "consumed_at",
        "discarded_at",
    ]
    fields = readonly_fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PipelineRun)
class PipelineRunAdmin(DjangoObjectActions, admin.ModelAdmin):
    list_display = [
        "run_id",
        "status",
        "branch",
        "short_commit",
        "source",
        "current_stage",
        "infrastructure_dirty",
        "created_at",
        "total_duration_ms",
    ]
    list_filter = ["status", "source", "event", "current_stage", "environment", "infrastructure_dirty"]
    search_fields = ["run_id", "trace_id", "branch", "commit_sha", "image_reference"]
    readonly_fields = [
        "run_id",
        "trace_id",
        "created_at",
        "updated_at",
        "started_at",
        "completed_at",
        "total_duration_ms",
        "pipeline_flow",
    ]
    inlines = [StageExecutionInline, ArtifactInline]
    change_actions = ["mark_failed"]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related("stage_executions")

    @admin.display(description="Commit")
    def short_commit(self, obj):
        return obj.commit_sha[:12] or "-"

    @object_action(label="Mark Failed", description="Give up on a run stuck in progress")
    def mark_failed(self, request, obj):
        if obj.is_finished:
            self.message_user(request, f"{obj.run_id} already finished ({obj.status}).", level="warning")
            return
        # A worker that died mid-stage leaves the run in progress forever.
        obj.mark_failed("ManualOverride", f"Marked failed from the admin during {obj.current_stage or 'startup'}")
        self.message_user(request, f"{obj.run_id} marked as failed.")

    fieldsets = [
        ("Run", {"fields": ["pipeline_flow", "trace_id", "run_id", "source", "event", "environment"]}),
        ("Commit", {"fields": ["repository", "branch", "commit_sha"]}),
        ("Outcome", {"fields": ["status", "current_stage", "image_reference", "infrastructure_dirty"]}),
        ("Errors", {"fields": ["last_error_type", "last_error_message"], "classes": ["collapse"]}),
        ("Timing", {"fields": ["created_at", "updated_at", "started_at", "completed_at", "total_duration_ms"]}),
    ]

    @admin.display(description="Stages")
    def pipeline_flow(self, obj):
        """test → quality scan → … → deploy, one coloured icon per stage."""
        reached = {se.stage: se.status for se in obj.stage_executions.all()}
        cells = [
            format_html(
                '<span style="display:inline-block;text-align:center;margin:0 4px;">'
                '<span style="color:{};font-size:18px;">{}</span><br>'
                '<span style="font-size:11px;">{}</span></span>',
                *STAGE_ICONS.get(reached.get(value), NOT_REACHED),
                label.upper(),
            )
            for value, label in PipelineStage.choices
        ]
        # cells are escaped by format_html
        arrow = mark_safe('<span style="color:#999;margin:0 2px;">→</span>')
        return format_html(
            '<div style="display:flex;align-items:center;padding:8px 0;">{}</div>',
            mark_safe(arrow.join(cells)),
        )


@admin.register(StageExecution)
class StageExecutionAdmin(admin.ModelAdmin):
    list_display = [
        "pipeline_run",
        "stage",
        "status",
        "duration_ms",
        "started_at",
    ]
    list_filter = ["stage", "status"]
    search_fields = ["pipeline_run__run_id", "pipeline_run__trace_id", "error_type"]
    readonly_fields = ["started_at", "completed_at", "duration_ms", "pretty_output", "log_excerpt"]
    formfield_overrides = {db_models.JSONField: {"widget": JSONEditorWidget}}

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("pipeline_run")

    fieldsets = [
        (None, {"fields": ["pipeline_run", "stage", "workspace", "status"]}),
        ("Output", {"fields": ["pretty_output", "output_snapshot"]}),
        ("Log", {"fields": ["log_excerpt"], "classes": ["collapse"]}),
        ("Errors", {"fields": ["error_type", "error_message", "error_stack"], "classes": ["collapse"]}),
        ("Timing", {"fields": ["started_at", "completed_at", "duration_ms"]}),
    ]

    @admin.display(description="Output")
    def pretty_output(self, obj):
        return prettify_json(obj.output_snapshot)

