"""Tests for the pipeline orchestrator."""

import tempfile
from pathlib import Path
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.artifacts.models import COVERAGE_REPORT, Artifact
from apps.artifacts.store import ArtifactStore
from apps.orchestration.dtos import (
    BuildResult,
    DeployResult,
    ProvisionResult,
    ScanResult,
    TestResult,
)
from apps.orchestration.executors import BaseExecutor
from apps.orchestration.models import (
    PipelineRun,
    PipelineStage,
    PipelineStatus,
    StageExecution,
    StageStatus,
)
from apps.orchestration.orchestrator import STAGE_ORDER, PipelineOrchestrator
from apps.toolchain.secret_store import SecretStore
from apps.toolchain.workspace import StageWorkspace
from apps.triggers.drivers.base import ParsedEvent

ALL_SECRETS = {
    "DATABASE_URL": "postgres://user:hunter2@db/app",
    "SONAR_TOKEN": "sonar-token-value",
    "AWS_ACCESS_KEY_ID": "AKIAEXAMPLE",
    "AWS_SECRET_ACCESS_KEY": "aws-secret-value",
    "AWS_REGION": "eu-west-1",
    "DOCKER_USERNAME": "acme",
    "DOCKER_TOKEN": "docker-token-value",
}


class RecordingExecutor(BaseExecutor):
    """Returns a canned result and remembers what it was given."""

    def __init__(self, result, artifact_store=None, raises=None, action=None):
        super().__init__(artifact_store)
        self.result = result
        self.raises = raises
        self.action = action
        self.calls = []

    def execute(self, ctx, workspace):
        self.calls.append({"ctx": ctx, "path": workspace.path, "env": dict(workspace.env)})
        if self.action:
            self.action(ctx, workspace)
        if self.raises:
            raise self.raises
        return self.result


class OrchestratorTestCase(TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        self.store = ArtifactStore(root=self.tmp / "artifacts")

    def workspace_factory(self, stage, run_id, secrets):
        return StageWorkspace(stage, run_id, secrets, root=self.tmp / "workspaces")

    def make_executors(self, **overrides):
        def publish_coverage(ctx, workspace):
            report = workspace.path / "coverage.xml"
            report.write_text("<coverage/>")
            self.store.upload(ctx.pipeline_run, COVERAGE_REPORT, report, stage=ctx.stage)

        def consume_coverage(ctx, workspace):
            self.store.download(ctx.pipeline_run, COVERAGE_REPORT, workspace.path, stage=ctx.stage)

        executors = {
            PipelineStage.TEST: RecordingExecutor(
                TestResult(commit_sha="a" * 40, tests_passed=True, exit_code=0),
                action=publish_coverage,
            ),
            PipelineStage.QUALITY_SCAN: RecordingExecutor(
                ScanResult(commit_sha="a" * 40, project_key="acme_app"),
                action=consume_coverage,
            ),
            PipelineStage.PROVISION: RecordingExecutor(
                ProvisionResult(commit_sha="a" * 40, applied=True, apply_started=True)
            ),
            PipelineStage.BUILD: RecordingExecutor(BuildResult(commit_sha="a" * 40, image="app:latest")),
            PipelineStage.DEPLOY: RecordingExecutor(
                DeployResult(
                    registry="docker.io",
                    pushed_references=["docker.io/acme/app:latest"],
                )
            ),
        }
        executors.update(overrides)
        return executors

    def make_orchestrator(self, executors=None, secrets=None):
        return PipelineOrchestrator(
            secret_store=SecretStore(ALL_SECRETS if secrets is None else secrets),
            artifact_store=self.store,
            executors=executors or self.make_executors(),
            workspace_factory=self.workspace_factory,
        )


class StartPipelineTests(OrchestratorTestCase):
    @override_settings(PIPELINE_DEFAULT_BRANCH="main", PIPELINE_ENVIRONMENT="staging")
    def test_defaults_to_manual_run_of_default_branch(self):
        run = self.make_orchestrator().start_pipeline(source="cli")

        self.assertEqual(run.status, PipelineStatus.PENDING)
        self.assertEqual(run.event, "manual")
        self.assertEqual(run.branch, "main")
        self.assertEqual(run.environment, "staging")
        self.assertEqual(run.source, "cli")
        self.assertTrue(run.trace_id)
        self.assertNotEqual(run.trace_id, run.run_id)

    def test_records_event_details(self):
        event = ParsedEvent(
            event="push",
            branch="main",
            commit_sha="b" * 40,
            repository="https://example.com/acme/app.git",
        )

        run = self.make_orchestrator().start_pipeline(event, source="github", trace_id="trace-xyz")

        self.assertEqual(run.trace_id, "trace-xyz")
        self.assertEqual(run.event, "push")
        self.assertEqual(run.commit_sha, "b" * 40)
        self.assertEqual(run.repository, "https://example.com/acme/app.git")

    def test_execute_run_rejects_unknown_and_started_runs(self):
        orchestrator = self.make_orchestrator()
        with self.assertRaises(ValueError):
            orchestrator.execute_run("does-not-exist")

        run = orchestrator.start_pipeline()
        orchestrator.execute_run(run.run_id)
        with self.assertRaises(ValueError):
            orchestrator.execute_run(run.run_id)

    def test_execute_run_loses_claim_to_another_worker(self):
        executors = self.make_executors()
        orchestrator = self.make_orchestrator(executors)
        run = orchestrator.start_pipeline()
        # Read before the other worker claimed the row, so it still looks pending.
        stale = PipelineRun.objects.get(run_id=run.run_id)
        PipelineRun.objects.filter(run_id=run.run_id).update(started_at=timezone.now())

        with patch.object(PipelineRun.objects, "get", return_value=stale):
            with self.assertRaises(ValueError):
                orchestrator.execute_run(run.run_id)

        self.assertEqual(executors[PipelineStage.TEST].calls, [])
        self.assertFalse(StageExecution.objects.filter(pipeline_run__run_id=run.run_id).exists())


class SuccessfulRunTests(OrchestratorTestCase):
    def test_all_stages_run_in_order(self):
        executors = self.make_executors()
        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertEqual(result.status, "COMPLETED")
        self.assertEqual(result.stages_completed, STAGE_ORDER)
        self.assertEqual(result.stages_skipped, [])
        self.assertIsNone(result.final_error)
        self.assertEqual(result.image_reference, "docker.io/acme/app:latest")

        run = PipelineRun.objects.get(run_id=result.run_id)
        self.assertEqual(run.status, PipelineStatus.DEPLOYED)
        self.assertEqual(run.current_stage, PipelineStage.DEPLOY)
        self.assertEqual(run.image_reference, "docker.io/acme/app:latest")
        self.assertIsNotNone(run.completed_at)

        stages = list(run.stage_executions.values_list("stage", "status"))
        self.assertEqual(stages, [(stage, StageStatus.SUCCEEDED) for stage in STAGE_ORDER])

    def test_tested_commit_is_pinned_for_later_stages(self):
        executors = self.make_executors()
        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        run = PipelineRun.objects.get(run_id=result.run_id)
        self.assertEqual(run.commit_sha, "a" * 40)
        deploy_ctx = executors[PipelineStage.DEPLOY].calls[0]["ctx"]
        self.assertEqual(deploy_ctx.commit_sha, "a" * 40)
        self.assertIn(PipelineStage.TEST, deploy_ctx.previous_results)

    def test_stages_get_separate_workspaces_and_only_their_secrets(self):
        executors = self.make_executors()
        self.make_orchestrator(executors).run_pipeline(source="cli")

        paths = {executors[stage].calls[0]["path"] for stage in STAGE_ORDER}
        self.assertEqual(len(paths), len(STAGE_ORDER))
        for path in paths:
            self.assertFalse(path.exists())

        test_env = executors[PipelineStage.TEST].calls[0]["env"]
        self.assertIn("DATABASE_URL", test_env)
        self.assertNotIn("DOCKER_TOKEN", test_env)
        self.assertNotIn("AWS_SECRET_ACCESS_KEY", test_env)

        scan_env = executors[PipelineStage.QUALITY_SCAN].calls[0]["env"]
        self.assertEqual(scan_env["SONAR_TOKEN"], "sonar-token-value")
        self.assertNotIn("DATABASE_URL", scan_env)

        deploy_env = executors[PipelineStage.DEPLOY].calls[0]["env"]
        self.assertIn("DOCKER_TOKEN", deploy_env)
        self.assertIn("AWS_ACCESS_KEY_ID", deploy_env)
        self.assertNotIn("SONAR_TOKEN", deploy_env)

    def test_artifacts_are_discarded_at_the_end(self):
        result = self.make_orchestrator().run_pipeline(source="cli")

        self.assertEqual(result.artifacts_discarded, 1)
        artifact = Artifact.objects.get(name=COVERAGE_REPORT)
        self.assertEqual(artifact.consumer_stage, PipelineStage.QUALITY_SCAN)
        self.assertTrue(artifact.is_discarded)
        self.assertFalse(self.store.run_dir(result.run_id).exists())

    @patch("apps.orchestration.orchestrator.emit_pipeline_completed")
    @patch("apps.orchestration.orchestrator.emit_stage_succeeded")
    @patch("apps.orchestration.orchestrator.emit_stage_started")
    def test_signals_are_emitted(self, mock_started, mock_succeeded, mock_completed):
        self.make_orchestrator().run_pipeline(source="cli")

        self.assertEqual(mock_started.call_count, len(STAGE_ORDER))
        self.assertEqual(mock_succeeded.call_count, len(STAGE_ORDER))
        self.assertEqual(mock_completed.call_args[0][2], "COMPLETED")
        self.assertEqual(mock_started.call_args_list[0][0][0].stage, PipelineStage.TEST)


class FailedRunTests(OrchestratorTestCase):
    def test_stage_errors_fail_the_run_and_skip_downstream(self):
        failing = RecordingExecutor(
            ProvisionResult(errors=["Provision error: terraform plan failed"])
        )
        executors = self.make_executors(**{PipelineStage.PROVISION: failing})

        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertEqual(result.status, "FAILED")
        self.assertEqual(result.stages_completed, [PipelineStage.TEST, PipelineStage.QUALITY_SCAN])
        self.assertEqual(result.stages_skipped, [PipelineStage.BUILD, PipelineStage.DEPLOY])
        self.assertEqual(result.final_error.stage, PipelineStage.PROVISION)
        self.assertIn("terraform plan failed", result.final_error.message)
        self.assertEqual(executors[PipelineStage.BUILD].calls, [])
        self.assertEqual(executors[PipelineStage.DEPLOY].calls, [])

        run = PipelineRun.objects.get(run_id=result.run_id)
        self.assertEqual(run.status, PipelineStatus.FAILED)
        self.assertEqual(run.current_stage, PipelineStage.PROVISION)
        self.assertFalse(run.infrastructure_dirty)

        statuses = dict(run.stage_executions.values_list("stage", "status"))
        self.assertEqual(statuses[PipelineStage.PROVISION], StageStatus.FAILED)
        self.assertEqual(statuses[PipelineStage.BUILD], StageStatus.SKIPPED)
        self.assertEqual(statuses[PipelineStage.DEPLOY], StageStatus.SKIPPED)
        skipped = run.stage_executions.get(stage=PipelineStage.BUILD)
        self.assertEqual(skipped.error_message, "Skipped: upstream stage provision failed")

        failed = run.stage_executions.get(stage=PipelineStage.PROVISION)
        self.assertEqual(failed.output_snapshot["errors"], ["Provision error: terraform plan failed"])

    def test_dirty_infrastructure_is_recorded(self):
        failing = RecordingExecutor(
            ProvisionResult(
                apply_started=True,
                infrastructure_dirty=True,
                errors=["Provision error: apply failed, infrastructure may be partially applied"],
            )
        )
        executors = self.make_executors(**{PipelineStage.PROVISION: failing})

        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertTrue(result.infrastructure_dirty)
        self.assertTrue(result.provision.infrastructure_dirty)
        self.assertTrue(PipelineRun.objects.get(run_id=result.run_id).infrastructure_dirty)

    def test_unexpected_exception_is_recorded_with_traceback(self):
        crashing = RecordingExecutor(None, raises=RuntimeError("boom"))
        executors = self.make_executors(**{PipelineStage.TEST: crashing})

        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertEqual(result.status, "FAILED")
        self.assertEqual(result.final_error.error_type, "RuntimeError")
        self.assertIn("Traceback", result.final_error.stack_trace)
        self.assertEqual(len(result.stages_skipped), 4)

        execution = StageExecution.objects.get(stage=PipelineStage.TEST)
        self.assertEqual(execution.error_type, "RuntimeError")
        self.assertIn("RuntimeError: boom", execution.error_stack)

        run = PipelineRun.objects.get(run_id=result.run_id)
        self.assertEqual(run.last_error_type, "RuntimeError")

    def test_bookkeeping_error_between_stages_fails_the_run(self):
        executors = self.make_executors()

        with patch.object(PipelineRun, "advance_to", side_effect=DatabaseError("connection lost")):
            result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertEqual(result.status, "FAILED")
        self.assertEqual(result.final_error.error_type, "DatabaseError")
        self.assertEqual(executors[PipelineStage.QUALITY_SCAN].calls, [])

        run = PipelineRun.objects.get(run_id=result.run_id)
        self.assertEqual(run.status, PipelineStatus.FAILED)
        self.assertEqual(run.last_error_type, "DatabaseError")
        self.assertIsNotNone(run.completed_at)

    def test_missing_secret_fails_before_executor_runs(self):
        secrets = {k: v for k, v in ALL_SECRETS.items() if k != "SONAR_TOKEN"}
        executors = self.make_executors()

        result = self.make_orchestrator(executors, secrets=secrets).run_pipeline(source="cli")

        self.assertEqual(result.final_error.stage, PipelineStage.QUALITY_SCAN)
        self.assertEqual(result.final_error.error_type, "MissingSecretError")
        self.assertIn("SONAR_TOKEN", result.final_error.message)
        self.assertEqual(executors[PipelineStage.QUALITY_SCAN].calls, [])

    def test_artifacts_are_discarded_after_failure(self):
        failing = RecordingExecutor(ScanResult(errors=["Quality scan error: scanner exited 2"]))

        def publish_only(ctx, workspace):
            report = workspace.path / "coverage.xml"
            report.write_text("<coverage/>")
            self.store.upload(ctx.pipeline_run, COVERAGE_REPORT, report, stage=ctx.stage)

        executors = self.make_executors(**{PipelineStage.QUALITY_SCAN: failing})
        executors[PipelineStage.TEST].action = publish_only

        result = self.make_orchestrator(executors).run_pipeline(source="cli")

        self.assertEqual(result.artifacts_discarded, 1)
        self.assertTrue(Artifact.objects.get(name=COVERAGE_REPORT).is_discarded)

    def test_failed_stage_keeps_redacted_log_excerpt(self):
        def leak(ctx, workspace):
            workspace.runner.run(["echo", workspace.secrets["DATABASE_URL"]], env=workspace.env)

        failing = RecordingExecutor(TestResult(errors=["Test suite failed with exit code 1"]), action=leak)
        executors = self.make_executors(**{PipelineStage.TEST: failing})

        self.make_orchestrator(executors).run_pipeline(source="cli")

        execution = StageExecution.objects.get(stage=PipelineStage.TEST)
        self.assertNotIn("hunter2", execution.log_excerpt)
        self.assertIn("***", execution.log_excerpt)
