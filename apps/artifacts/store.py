"""
Filesystem-backed artifact store.

Layout: ``<root>/<run_id>/<name>/<filename>``. Metadata lives in the Artifact
model so any worker sharing the root can find what an upstream stage produced.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path

from django.conf import settings
from django.db import transaction

from apps.artifacts.exceptions import (
    ArtifactConsumedError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
)
from apps.artifacts.models import Artifact

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def file_sha256(path: str | Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactStore:
    """
    Upload, download-once and discard artifacts of a pipeline run.

    Usage:
        store = ArtifactStore()
        store.upload(run, "coverage-report", ws.path / "coverage.xml", stage="test")
        path = store.download(run, "coverage-report", ws.path, stage="quality_scan")
        store.discard_run(run)
    """

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or getattr(settings, "PIPELINE_ARTIFACT_ROOT", "var/artifacts"))

    def run_dir(self, run_id: str) -> Path:
        return self.root / run_id

    def upload(self, pipeline_run, name: str, source: str | Path, stage: str) -> Artifact:
        """
        Copy ``source`` into the store and record it.

        Raises:
            ArtifactNotFoundError: ``source`` does not exist.
        """
        source = Path(source)
        if not source.is_file():
            raise ArtifactNotFoundError(pipeline_run.run_id, name, f"{source} does not exist")

        target_dir = self.run_dir(pipeline_run.run_id) / name
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / source.name
        shutil.copyfile(source, target)

        artifact = Artifact.objects.create(
            pipeline_run=pipeline_run,
            name=name,
            producer_stage=stage,
            filename=source.name,
            storage_path=str(target),
            size_bytes=target.stat().st_size,
            sha256=file_sha256(target),
        )
        logger.info(
            "Uploaded artifact %s (%d bytes)",
            name,
            artifact.size_bytes,
            extra={"run_id": pipeline_run.run_id, "stage": stage},
        )
        return artifact

    def download(self, pipeline_run, name: str, dest_dir: str | Path, stage: str) -> Path:
        """
        Copy the artifact into ``dest_dir`` and mark it consumed.

        Returns:
            Path of the copied file.

        Raises:
            ArtifactNotFoundError: Never uploaded for this run, or already discarded.
            ArtifactConsumedError: Already downloaded by a stage.
            ArtifactIntegrityError: Stored bytes do not match the recorded checksum.
        """
        run_id = pipeline_run.run_id
        with transaction.atomic():
            try:
                artifact = Artifact.objects.select_for_update().get(
                    pipeline_run=pipeline_run, name=name
                )
            except Artifact.DoesNotExist:
                raise ArtifactNotFoundError(run_id, name)

            if artifact.is_discarded:
                raise ArtifactNotFoundError(run_id, name, "already discarded")
            if artifact.is_consumed:
                raise ArtifactConsumedError(run_id, name, artifact.consumer_stage)

            stored = Path(artifact.storage_path)
            if not stored.is_file():
                raise ArtifactNotFoundError(run_id, name, f"{stored} is missing")

            actual = file_sha256(stored)
            if actual != artifact.sha256:
                raise ArtifactIntegrityError(run_id, name, artifact.sha256, actual)

            dest_dir = Path(dest_dir)
            dest_dir.mkdir(parents=True, exist_ok=True)
            target = dest_dir / artifact.filename
            shutil.copyfile(stored, target)
            artifact.mark_consumed(stage)

        logger.info(
            "Downloaded artifact %s",
            name,
            extra={"run_id": run_id, "stage": stage},
        )
        return target

    def discard_run(self, pipeline_run) -> int:
        """
        Delete every stored file of the run and stamp the records.

        Returns:
            Number of artifacts discarded by this call.
        """
        pending = list(Artifact.objects.filter(pipeline_run=pipeline_run, discarded_at__isnull=True))
        for artifact in pending:
            artifact.mark_discarded()

        run_dir = self.run_dir(pipeline_run.run_id)
        if run_dir.exists():
            shutil.rmtree(run_dir)

        if pending:
            logger.info(
                "Discarded %d artifact(s)",
                len(pending),
                extra={"run_id": pipeline_run.run_id},
            )
        return len(pending)

    def stale_runs(self):
        """Finished runs that still have artifacts on disk."""
        from apps.orchestration.models import PipelineRun, PipelineStatus

        run_ids = (
            Artifact.objects.filter(discarded_at__isnull=True)
            .values_list("pipeline_run_id", flat=True)
            .distinct()
        )
        return PipelineRun.objects.filter(
            id__in=run_ids,
            status__in=[PipelineStatus.DEPLOYED, PipelineStatus.FAILED],
        )
