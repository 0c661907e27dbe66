"""Tests for orchestration Celery tasks."""

import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase, override_settings

from apps.artifacts.models import Artifact
from apps.orchestration.dtos import PipelineResult
from apps.orchestration.models import PipelineRun, PipelineStatus
from apps.orchestration.tasks import discard_stale_artifacts_task, run_pipeline_task


class RunPipelineTaskTests(TestCase):
    @patch("apps.orchestration.orchestrator.PipelineOrchestrator.execute_run")
    def test_executes_run(self, mock_execute):
        mock_execute.return_value = PipelineResult(trace_id="t", run_id="run-1", status="COMPLETED")

        result = run_pipeline_task.apply(args=["run-1"]).get()

        mock_execute.assert_called_once_with("run-1")
        assert result["status"] == "COMPLETED"


class DiscardStaleArtifactsTaskTests(TestCase):
    def test_discards_only_finished_runs(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            finished = PipelineRun.objects.create(trace_id="t1", run_id="done", status=PipelineStatus.FAILED)
            running = PipelineRun.objects.create(trace_id="t2", run_id="busy", status=PipelineStatus.TESTED)
            for run in (finished, running):
                path = root / run.run_id / "coverage-report" / "coverage.xml"
                path.parent.mkdir(parents=True)
                path.write_text("<coverage/>")
                Artifact.objects.create(
                    pipeline_run=run,
                    name="coverage-report",
                    producer_stage="test",
                    filename="coverage.xml",
                    storage_path=str(path),
                )

            with override_settings(PIPELINE_ARTIFACT_ROOT=str(root)):
                count = discard_stale_artifacts_task.apply().get()

            assert count == 1
            assert not (root / "done").exists()
            assert (root / "busy").exists()
            assert Artifact.objects.get(pipeline_run=running).discarded_at is None
