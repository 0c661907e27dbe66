"""
Stage executors for each pipeline stage.

Each executor drives the external tools for its stage inside the isolated
workspace it is handed, and returns a structured DTO. Expected failures
(a command exiting non-zero, a missing tool or artifact, an unreadable
report) are collected in ``result.errors``; anything else propagates to the
orchestrator, which records it with its traceback.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from django.conf import settings

from apps.artifacts.exceptions import ArtifactError
from apps.artifacts.models import COVERAGE_REPORT, image_artifact_name
from apps.artifacts.store import ArtifactStore
from apps.orchestration.dtos import (
    BuildResult,
    DeployResult,
    ProvisionResult,
    ScanResult,
    StageContext,
    TestResult,
)
from apps.toolchain.exceptions import CommandFailedError, ToolError
from apps.toolchain.tools import aws_environment, get_tool, registry_repository
from apps.toolchain.tools.python import parse_coverage_report
from apps.toolchain.tools.sonar import dashboard_url
from apps.toolchain.tools.terraform import parse_plan_summary
from apps.toolchain.workspace import StageWorkspace

logger = logging.getLogger(__name__)

# Errors a stage reports as a failed result rather than a crash.
EXPECTED_ERRORS = (ToolError, ArtifactError, ValueError, OSError)


class BaseExecutor(ABC):
    """Base class for stage executors."""

    def __init__(self, artifact_store: ArtifactStore | None = None):
        self.artifact_store = artifact_store or ArtifactStore()

    @abstractmethod
    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> Any:
        """Execute the stage and return a result DTO."""
        raise NotImplementedError

    def checkout(self, ctx: StageContext, workspace: StageWorkspace) -> str:
        """Clone the commit under test into the workspace and return its SHA."""
        repository = ctx.repository or getattr(settings, "PIPELINE_SOURCE_REPOSITORY", "")
        if not repository:
            raise ValueError("No repository configured (PIPELINE_SOURCE_REPOSITORY)")
        git = get_tool("git", workspace.runner, workspace.env)
        return git.checkout(
            repository,
            workspace.source_dir,
            commit_sha=ctx.commit_sha,
            branch=ctx.branch,
        )


class TestExecutor(BaseExecutor):
    """
    Stage 1: Test executor.

    Checks out the commit, installs declared dependencies into a fresh
    virtualenv, runs the suite with coverage and publishes the report.
    """

    __test__ = False  # not a pytest test class

    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> TestResult:
        start_time = time.perf_counter()
        result = TestResult()

        try:
            result.commit_sha = self.checkout(ctx, workspace)
            source = workspace.source_dir

            python = get_tool("python", workspace.runner, workspace.env)
            if getattr(settings, "PIPELINE_TEST_USE_VENV", True):
                interpreter = python.create_venv(workspace.path / "venv")
            else:
                interpreter = python.binary
            python.upgrade_pip(interpreter)

            requirements = source / getattr(settings, "PIPELINE_REQUIREMENTS_FILE", "requirements.txt")
            if not requirements.is_file():
                result.errors.append(f"Dependency manifest not found: {requirements.name}")
                return self._finish(result, start_time)
            python.install_requirements(interpreter, requirements, cwd=source)

            report = workspace.path / getattr(settings, "PIPELINE_COVERAGE_REPORT", "coverage.xml")
            run = python.run_pytest(
                interpreter,
                cwd=source,
                coverage_target=getattr(settings, "PIPELINE_COVERAGE_TARGET", "api"),
                report_path=str(report),
                env=workspace.environ(PYTHONPATH=str(source)),
            )
            result.exit_code = run.returncode
            result.tests_passed = run.ok
            if not run.ok:
                result.errors.append(f"Test suite failed with exit code {run.returncode}")
                return self._finish(result, start_time)

            if not report.is_file():
                result.errors.append("Test run did not produce a coverage report")
                return self._finish(result, start_time)

            result.coverage = parse_coverage_report(report)
            result.coverage_percent = result.coverage["coverage_percent"]

            self.artifact_store.upload(ctx.pipeline_run, COVERAGE_REPORT, report, stage=ctx.stage)
            result.artifact = COVERAGE_REPORT

        except EXPECTED_ERRORS as e:
            logger.warning("Test stage error: %s", e, extra={"run_id": ctx.run_id})
            result.errors.append(f"Test error: {e}")

        return self._finish(result, start_time)

    def _finish(self, result, start_time):
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result


class QualityScanExecutor(BaseExecutor):
    """
    Stage 2: Quality-scan executor.

    Downloads the coverage report produced by the test stage and runs the
    static-analysis scanner against the checked-out sources.
    """

    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> ScanResult:
        start_time = time.perf_counter()
        project_key = getattr(settings, "SONAR_PROJECT_KEY", "")
        host_url = getattr(settings, "SONAR_HOST_URL", "https://sonarcloud.io")
        result = ScanResult(
            project_key=project_key,
            organization=getattr(settings, "SONAR_ORGANIZATION", ""),
        )

        try:
            if not project_key:
                raise ValueError("SONAR_PROJECT_KEY is not configured")

            result.commit_sha = self.checkout(ctx, workspace)
            source = workspace.source_dir

            # Fails the stage when the test stage published nothing.
            report = self.artifact_store.download(
                ctx.pipeline_run, COVERAGE_REPORT, source, stage=ctx.stage
            )
            result.coverage_report = report.name

            scanner = get_tool("sonar-scanner", workspace.runner, workspace.env)
            result.scanner = scanner.ensure_installed()
            scanner.scan(
                cwd=source,
                project_key=project_key,
                sources=getattr(settings, "SONAR_SOURCES", "api"),
                coverage_report=report.name,
                host_url=host_url,
                organization=result.organization,
                executable=result.scanner,
            )
            result.dashboard_url = dashboard_url(host_url, project_key)

        except EXPECTED_ERRORS as e:
            logger.warning("Quality scan error: %s", e, extra={"run_id": ctx.run_id})
            result.errors.append(f"Quality scan error: {e}")

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result


class ProvisionExecutor(BaseExecutor):
    """
    Stage 3: Provision executor.

    init → plan (saved to tfplan) → show → apply of the saved plan, with no
    approval gate. A failed apply leaves the infrastructure as terraform left
    it and flags the run.
    """

    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> ProvisionResult:
        start_time = time.perf_counter()
        result = ProvisionResult()

        try:
            result.commit_sha = self.checkout(ctx, workspace)
            tf_dir = workspace.source_dir / getattr(settings, "PIPELINE_TERRAFORM_DIR", "terraform")
            if not tf_dir.is_dir():
                raise ValueError(f"Infrastructure directory not found: {tf_dir.name}")
            result.working_dir = tf_dir.name

            env = workspace.environ(**aws_environment(workspace.secrets))

            if getattr(settings, "PIPELINE_AWS_VERIFY_IDENTITY", False):
                identity = get_tool("aws", workspace.runner, env).caller_identity()
                result.account_id = identity.get("Account", "")

            terraform = get_tool("terraform", workspace.runner, env)
            terraform.init(tf_dir)
            terraform.plan(tf_dir)
            shown = terraform.show(tf_dir)
            result.plan_summary = parse_plan_summary(shown.stdout)

            result.apply_started = True
            try:
                terraform.apply(tf_dir)
            except CommandFailedError as e:
                result.infrastructure_dirty = True
                result.errors.append(
                    f"Provision error: apply failed, infrastructure may be partially applied: {e}"
                )
            else:
                result.applied = True

        except EXPECTED_ERRORS as e:
            logger.warning("Provision error: %s", e, extra={"run_id": ctx.run_id})
            result.errors.append(f"Provision error: {e}")

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result


class BuildExecutor(BaseExecutor):
    """
    Stage 4: Build executor.

    Builds the container image with the build secret exposed from the stage
    environment, saves it to an archive and publishes the archive.
    """

    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> BuildResult:
        start_time = time.perf_counter()
        image_name = getattr(settings, "PIPELINE_IMAGE_NAME", "ledschallenge")
        tag = getattr(settings, "PIPELINE_IMAGE_TAG", "latest")
        result = BuildResult(
            image=f"{image_name}:{tag}",
            secret_mode=getattr(settings, "PIPELINE_BUILD_SECRET_MODE", "secret"),
        )

        try:
            result.commit_sha = self.checkout(ctx, workspace)

            docker = get_tool("docker", workspace.runner, workspace.env)
            docker.build(
                workspace.source_dir,
                result.image,
                dockerfile=getattr(settings, "PIPELINE_DOCKERFILE", "Dockerfile"),
                secret_name=getattr(settings, "PIPELINE_BUILD_SECRET_NAME", "DATABASE_URL"),
                secret_mode=result.secret_mode,
            )

            archive = workspace.path / f"{image_name}.tar"
            docker.save(result.image, archive)

            name = image_artifact_name(image_name)
            artifact = self.artifact_store.upload(ctx.pipeline_run, name, archive, stage=ctx.stage)
            result.artifact = name
            result.archive_size_bytes = artifact.size_bytes

        except EXPECTED_ERRORS as e:
            logger.warning("Build error: %s", e, extra={"run_id": ctx.run_id})
            result.errors.append(f"Build error: {e}")

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result


class DeployExecutor(BaseExecutor):
    """
    Stage 5: Deploy executor.

    Loads the image archive from the build stage, tags it for the registry
    and pushes it. ``latest`` is always pushed (and overwritten); the short
    commit SHA tag is pushed too unless PIPELINE_IMMUTABLE_TAGS is off.
    """

    def execute(self, ctx: StageContext, workspace: StageWorkspace) -> DeployResult:
        start_time = time.perf_counter()
        image_name = getattr(settings, "PIPELINE_IMAGE_NAME", "ledschallenge")
        tag = getattr(settings, "PIPELINE_IMAGE_TAG", "latest")
        result = DeployResult(registry=getattr(settings, "PIPELINE_REGISTRY", "docker.io"))

        docker = None
        logged_in = False
        try:
            env = workspace.environ(**aws_environment(workspace.secrets))
            docker = get_tool("docker", workspace.runner, env)

            username = workspace.secrets["DOCKER_USERNAME"]
            docker.login(result.registry, username, workspace.secrets["DOCKER_TOKEN"])
            logged_in = True

            archive = self.artifact_store.download(
                ctx.pipeline_run,
                image_artifact_name(image_name),
                workspace.path,
                stage=ctx.stage,
            )
            result.loaded_image = docker.load(archive) or f"{image_name}:{tag}"

            repository = registry_repository(result.registry, username, image_name)
            targets = [f"{repository}:{tag}"]
            if getattr(settings, "PIPELINE_IMMUTABLE_TAGS", True) and ctx.commit_sha:
                targets.append(f"{repository}:{ctx.commit_sha[:12]}")

            for target in targets:
                docker.tag(result.loaded_image, target)
                digest = docker.push(target)
                result.pushed_references.append(target)
                result.digest = result.digest or digest

        except EXPECTED_ERRORS as e:
            logger.warning("Deploy error: %s", e, extra={"run_id": ctx.run_id})
            result.errors.append(f"Deploy error: {e}")

        finally:
            if logged_in:
                try:
                    docker.logout(result.registry)
                except ToolError as e:
                    # The push already happened; a stuck logout doesn't undo it.
                    logger.warning("docker logout failed: %s", e, extra={"run_id": ctx.run_id})

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result
