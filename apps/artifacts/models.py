"""Run-scoped artifact records."""

from django.db import models
from django.utils import timezone

from apps.orchestration.models import PipelineStage

COVERAGE_REPORT = "coverage-report"
IMAGE_SUFFIX = "-image"


def image_artifact_name(image_name: str) -> str:
    """Name of the image archive artifact, e.g. ``ledschallenge-image``."""
    return f"{image_name}{IMAGE_SUFFIX}"


class Artifact(models.Model):
    """
    A file produced by one stage of a run and consumed by a later one.

    The row outlives the file: after the run finishes the file is deleted and
    ``discarded_at`` is stamped, which keeps the audit trail (size, checksum,
    producer, consumer) without retaining the bytes.
    """

    pipeline_run = models.ForeignKey(
        "orchestration.PipelineRun",
        on_delete=models.CASCADE,
        related_name="artifacts",
    )
    name = models.CharField(max_length=128, help_text="e.g. coverage-report")
    producer_stage = models.CharField(max_length=20, choices=PipelineStage.choices)
    filename = models.CharField(max_length=255)
    storage_path = models.CharField(max_length=1024)
    size_bytes = models.BigIntegerField(default=0)
    sha256 = models.CharField(max_length=64)

    uploaded_at = models.DateTimeField(auto_now_add=True)
    consumed_at = models.DateTimeField(null=True, blank=True)
    consumer_stage = models.CharField(
        max_length=20, choices=PipelineStage.choices, blank=True, default=""
    )
    discarded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["pipeline_run", "uploaded_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["pipeline_run", "name"],
                name="unique_artifact_per_run",
            )
        ]
        indexes = [
            models.Index(fields=["discarded_at"], name="artifacts_a_discard_2a6f1c_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.pipeline_run.run_id})"

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    def mark_consumed(self, stage: str):
        self.consumed_at = timezone.now()
        self.consumer_stage = stage
        self.save(update_fields=["consumed_at", "consumer_stage"])

    def mark_discarded(self):
        self.discarded_at = timezone.now()
        self.save(update_fields=["discarded_at"])
