"""Tests for the run-scoped artifact store."""

import tempfile
from pathlib import Path

from django.test import TestCase

from apps.artifacts.exceptions import (
    ArtifactConsumedError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
)
from apps.artifacts.models import COVERAGE_REPORT, Artifact, image_artifact_name
from apps.artifacts.store import ArtifactStore, file_sha256
from apps.orchestration.models import PipelineRun


class ArtifactStoreTests(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        self.store = ArtifactStore(root=self.tmp / "store")
        self.run = PipelineRun.objects.create(trace_id="trace-1", run_id="run-1")
        self.source = self.tmp / "coverage.xml"
        self.source.write_text('<coverage line-rate="0.9"></coverage>')

    def test_upload_copies_and_records(self):
        artifact = self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")

        expected = self.tmp / "store" / "run-1" / COVERAGE_REPORT / "coverage.xml"
        self.assertEqual(artifact.storage_path, str(expected))
        self.assertTrue(expected.exists())
        self.assertEqual(artifact.size_bytes, self.source.stat().st_size)
        self.assertEqual(artifact.sha256, file_sha256(self.source))
        self.assertEqual(artifact.producer_stage, "test")

    def test_upload_missing_source(self):
        with self.assertRaises(ArtifactNotFoundError):
            self.store.upload(self.run, COVERAGE_REPORT, self.tmp / "nope.xml", stage="test")
        self.assertFalse(Artifact.objects.exists())

    def test_download_once(self):
        self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")

        path = self.store.download(self.run, COVERAGE_REPORT, self.tmp / "ws", stage="quality_scan")

        self.assertEqual(path.read_text(), self.source.read_text())
        artifact = Artifact.objects.get(name=COVERAGE_REPORT)
        self.assertTrue(artifact.is_consumed)
        self.assertEqual(artifact.consumer_stage, "quality_scan")

        with self.assertRaises(ArtifactConsumedError) as ctx:
            self.store.download(self.run, COVERAGE_REPORT, self.tmp / "ws2", stage="quality_scan")
        self.assertEqual(ctx.exception.consumer_stage, "quality_scan")

    def test_download_never_uploaded(self):
        with self.assertRaises(ArtifactNotFoundError) as ctx:
            self.store.download(self.run, "ledschallenge-image", self.tmp / "ws", stage="deploy")
        self.assertIn("not found for run run-1", str(ctx.exception))

    def test_download_is_scoped_to_run(self):
        self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")
        other = PipelineRun.objects.create(trace_id="trace-2", run_id="run-2")

        with self.assertRaises(ArtifactNotFoundError):
            self.store.download(other, COVERAGE_REPORT, self.tmp / "ws", stage="quality_scan")

    def test_download_detects_tampering(self):
        artifact = self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")
        Path(artifact.storage_path).write_text("tampered")

        with self.assertRaises(ArtifactIntegrityError):
            self.store.download(self.run, COVERAGE_REPORT, self.tmp / "ws", stage="quality_scan")

    def test_discard_run_removes_files(self):
        self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")

        discarded = self.store.discard_run(self.run)

        self.assertEqual(discarded, 1)
        self.assertFalse((self.tmp / "store" / "run-1").exists())
        artifact = Artifact.objects.get(name=COVERAGE_REPORT)
        self.assertTrue(artifact.is_discarded)

        with self.assertRaises(ArtifactNotFoundError):
            self.store.download(self.run, COVERAGE_REPORT, self.tmp / "ws", stage="quality_scan")

    def test_discard_run_is_idempotent(self):
        self.store.upload(self.run, COVERAGE_REPORT, self.source, stage="test")
        self.store.discard_run(self.run)

        self.assertEqual(self.store.discard_run(self.run), 0)

    def test_image_artifact_name(self):
        self.assertEqual(image_artifact_name("ledschallenge"), "ledschallenge-image")
