"""
Persistent state of release runs.

A PipelineRun walks PENDING → TESTED → SCANNED → PROVISIONED → BUILT → DEPLOYED
and can drop to FAILED from any of them. Each stage attempt gets one
StageExecution row.
"""

from django.db import models
from django.utils import timezone


class PipelineStage(models.TextChoices):
    """Stages, declared in the order they run."""

    TEST = "test", "Test"
    QUALITY_SCAN = "quality_scan", "Quality Scan"
    PROVISION = "provision", "Provision"
    BUILD = "build", "Build"
    DEPLOY = "deploy", "Deploy"


class PipelineStatus(models.TextChoices):
    """Run status; each value names the last stage that succeeded."""

    PENDING = "pending", "Pending"
    TESTED = "tested", "Tested"
    SCANNED = "scanned", "Scanned"
    PROVISIONED = "provisioned", "Provisioned"
    BUILT = "built", "Built"
    DEPLOYED = "deployed", "Deployed"
    FAILED = "failed", "Failed"


class StageStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    RUNNING = "running", "Running"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


class TriggerEventType(models.TextChoices):
    """What started the run."""

    PUSH = "push", "Push"
    PULL_REQUEST = "pull_request", "Pull request"
    MANUAL = "manual", "Manual"


class PipelineRun(models.Model):
    """
    One attempt to ship a commit.

    Holds the commit being shipped, its trigger and the correlation IDs
    carried into every stage.
    """

    # Correlation IDs (required for tracing)
    trace_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Shared by every log line, signal and artifact of the run.",
    )
    run_id = models.CharField(
        max_length=64,
        unique=True,
        db_index=True,
        help_text="Identifies this run in the API, the admin and artifact paths.",
    )

    # State machine
    status = models.CharField(
        max_length=20,
        choices=PipelineStatus.choices,
        default=PipelineStatus.PENDING,
        db_index=True,
    )
    current_stage = models.CharField(
        max_length=20,
        choices=PipelineStage.choices,
        null=True,
        blank=True,
        help_text="Stage in progress, or the last one attempted.",
    )

    # Trigger information
    source = models.CharField(
        max_length=100,
        default="unknown",
        db_index=True,
        help_text="Trigger source (e.g., 'github', 'generic', 'cli', 'api').",
    )
    event = models.CharField(
        max_length=20,
        choices=TriggerEventType.choices,
        default=TriggerEventType.MANUAL,
    )
    branch = models.CharField(max_length=255, blank=True, default="", db_index=True)
    commit_sha = models.CharField(max_length=64, blank=True, default="", db_index=True)
    repository = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Clone URL or path of the repository being shipped.",
    )
    environment = models.CharField(
        max_length=50,
        default="production",
        help_text="Deployment target name, e.g. 'production'.",
    )

    # Outcome
    image_reference = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Registry reference of the image pushed by the deploy stage.",
    )
    infrastructure_dirty = models.BooleanField(
        default=False,
        help_text="Infrastructure apply failed after starting; state may be partially applied.",
    )

    # Error tracking
    last_error_type = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )
    last_error_message = models.TextField(
        blank=True,
        default="",
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set when the first stage begins.",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set when the run is deployed or fails.",
    )
    total_duration_ms = models.FloatField(
        default=0.0,
        help_text="Wall time from first stage start to completion, in ms.",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["trace_id", "run_id"], name="orchestrati_trace_i_5b1c0e_idx"),
            models.Index(fields=["status", "created_at"], name="orchestrati_status_8d2f4a_idx"),
            models.Index(fields=["branch", "commit_sha"], name="orchestrati_branch_3e7a91_idx"),
        ]

    def __str__(self):
        return f"{self.run_id} ({self.branch or '?'}) [{self.status}]"

    @property
    def is_finished(self) -> bool:
        return self.status in (PipelineStatus.DEPLOYED, PipelineStatus.FAILED)

    def mark_started(self, stage: str):
        self.current_stage = stage
        self.started_at = timezone.now()
        self.save(update_fields=["current_stage", "started_at", "updated_at"])

    def advance_to(self, status: str, stage: str | None = None):
        """Record a reached status; ``stage`` moves the current-stage pointer too."""
        self.status = status
        if stage is not None:
            self.current_stage = stage
        self.save(update_fields=["status", "current_stage", "updated_at"])

    def _finish(self, status: str, *extra_fields: str):
        self.status = status
        self.completed_at = timezone.now()
        self.total_duration_ms = _elapsed_ms(self.started_at, self.completed_at)
        self.save(update_fields=["status", "completed_at", "total_duration_ms", "updated_at", *extra_fields])

    def mark_completed(self, status: str = PipelineStatus.DEPLOYED):
        self._finish(status)

    def mark_failed(self, error_type: str, message: str):
        """Terminal failure. The first error recorded is the one reported."""
        self.last_error_type = error_type
        self.last_error_message = message
        self._finish(PipelineStatus.FAILED, "last_error_type", "last_error_message")


class StageExecution(models.Model):
    """
    Outcome of one stage within a run.

    One row per stage per run: stages are never retried.
    """

    pipeline_run = models.ForeignKey(
        PipelineRun,
        on_delete=models.CASCADE,
        related_name="stage_executions",
    )

    stage = models.CharField(
        max_length=20,
        choices=PipelineStage.choices,
        db_index=True,
    )
    status = models.CharField(
        max_length=20,
        choices=StageStatus.choices,
        default=StageStatus.PENDING,
        db_index=True,
    )
    workspace = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Ephemeral workspace directory used by this stage (removed afterwards).",
    )

    # Redacted copies for the dashboard
    output_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text="Stage result as stored for the dashboard, secrets redacted.",
    )
    log_excerpt = models.TextField(
        blank=True,
        default="",
        help_text="Tail of the tool output (secrets redacted).",
    )

    # Error tracking
    error_type = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )
    error_message = models.TextField(
        blank=True,
        default="",
    )
    error_stack = models.TextField(
        blank=True,
        default="",
    )

    # Timestamps
    started_at = models.DateTimeField(
        null=True,
        blank=True,
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
    )
    duration_ms = models.FloatField(
        default=0.0,
        help_text="Wall time of the stage, in ms.",
    )

    class Meta:
        ordering = ["pipeline_run", "id"]
        indexes = [
            models.Index(fields=["pipeline_run", "stage"], name="orchestrati_pipelin_4c9d2b_idx"),
            models.Index(fields=["stage", "status"], name="orchestrati_stage_7f1e3d_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["pipeline_run", "stage"],
                name="unique_stage_per_run",
            ),
        ]

    def __str__(self):
        return f"{self.pipeline_run.run_id} / {self.stage} [{self.status}]"

    def mark_started(self, workspace: str = ""):
        self.status = StageStatus.RUNNING
        self.started_at = timezone.now()
        self.workspace = workspace
        self.save(update_fields=["status", "started_at", "workspace"])

    def _close(self, status: str, output_snapshot: dict | None, log_excerpt: str, *extra_fields: str):
        self.status = status
        self.completed_at = timezone.now()
        self.duration_ms = _elapsed_ms(self.started_at, self.completed_at)
        if output_snapshot:
            self.output_snapshot = output_snapshot
        self.log_excerpt = log_excerpt
        self.save(
            update_fields=["status", "completed_at", "duration_ms", "output_snapshot", "log_excerpt", *extra_fields]
        )

    def mark_succeeded(self, output_snapshot: dict | None = None, log_excerpt: str = ""):
        self._close(StageStatus.SUCCEEDED, output_snapshot, log_excerpt)

    def mark_failed(
        self,
        error_type: str,
        error_message: str,
        error_stack: str = "",
        output_snapshot: dict | None = None,
        log_excerpt: str = "",
    ):
        """
        Record a failed stage.

        ``error_stack`` is only filled for unexpected exceptions; expected
        tool failures carry their message and the redacted log excerpt.
        """
        self.error_type = error_type
        self.error_message = error_message
        self.error_stack = error_stack
        self._close(
            StageStatus.FAILED, output_snapshot, log_excerpt, "error_type", "error_message", "error_stack"
        )

    def mark_skipped(self, reason: str = ""):
        """Never started because an upstream stage failed."""
        self.status = StageStatus.SKIPPED
        self.completed_at = timezone.now()
        if reason:
            self.error_message = f"Skipped: {reason}"
        self.save(update_fields=["status", "completed_at", "error_message"])


def _elapsed_ms(started, finished) -> float:
    if not started:
        return 0.0
    return (finished - started).total_seconds() * 1000
