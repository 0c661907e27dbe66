"""Tests for the discard_artifacts management command."""

import tempfile
from io import StringIO
from pathlib import Path

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from apps.artifacts.models import Artifact
from apps.artifacts.store import ArtifactStore
from apps.orchestration.models import PipelineRun, PipelineStatus


class DiscardArtifactsCommandTests(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name) / "store"
        settings_override = override_settings(PIPELINE_ARTIFACT_ROOT=str(self.root))
        settings_override.enable()
        self.addCleanup(settings_override.disable)

        source = Path(self._tmp.name) / "app.tar"
        source.write_bytes(b"image-bytes")
        store = ArtifactStore()

        self.finished = PipelineRun.objects.create(
            trace_id="t1", run_id="finished", status=PipelineStatus.FAILED
        )
        self.active = PipelineRun.objects.create(
            trace_id="t2", run_id="active", status=PipelineStatus.BUILT
        )
        store.upload(self.finished, "ledschallenge-image", source, stage="build")
        store.upload(self.active, "ledschallenge-image", source, stage="build")

    def test_discards_only_finished_runs(self):
        out = StringIO()
        call_command("discard_artifacts", stdout=out)

        self.assertIn("Total discarded: 1", out.getvalue())
        self.assertTrue(Artifact.objects.get(pipeline_run=self.finished).is_discarded)
        self.assertFalse(Artifact.objects.get(pipeline_run=self.active).is_discarded)
        self.assertTrue((self.root / "active").exists())
        self.assertFalse((self.root / "finished").exists())

    def test_dry_run(self):
        out = StringIO()
        call_command("discard_artifacts", "--dry-run", stdout=out)

        self.assertIn("Would discard 1 artifact(s) of run finished", out.getvalue())
        self.assertFalse(Artifact.objects.filter(discarded_at__isnull=False).exists())

    def test_specific_run(self):
        out = StringIO()
        call_command("discard_artifacts", "--run-id", "active", stdout=out)

        self.assertTrue(Artifact.objects.get(pipeline_run=self.active).is_discarded)

    def test_unknown_run(self):
        with self.assertRaises(CommandError):
            call_command("discard_artifacts", "--run-id", "missing", stdout=StringIO())
