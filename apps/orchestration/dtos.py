"""
Typed results passed between pipeline stages.

Every executor returns one of these. The orchestrator stores them as
redacted output snapshots, hands them to later stages through
StageContext.previous_results and collects them into a PipelineResult.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any


@dataclass
class StageContext:
    """
    What an executor gets to work with.

    Carries the correlation IDs, the commit being shipped and the outputs of
    the stages that already ran.
    """

    trace_id: str
    run_id: str
    stage: str
    repository: str = ""
    branch: str = ""
    commit_sha: str = ""
    event: str = "manual"
    environment: str = "production"
    source: str = "unknown"
    previous_results: dict[str, Any] = field(default_factory=dict)
    # Model instance, used for artifact bookkeeping. Not serialized.
    pipeline_run: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "pipeline_run"}


@dataclass
class StageError:
    """The failure a run reports: first stage to fail wins."""

    error_type: str
    message: str
    stage: str = ""
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TestResult:
    """
    Result of the test stage.

    Output:
    - commit_sha: Commit actually checked out
    - exit_code: Exit status of the test run
    - coverage: Headline numbers from the coverage report
    - artifact: Name of the uploaded coverage artifact
    """

    __test__ = False  # not a pytest test class

    commit_sha: str = ""
    tests_passed: bool = False
    exit_code: int | None = None
    coverage: dict[str, Any] = field(default_factory=dict)
    coverage_percent: float | None = None
    artifact: str | None = None
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScanResult:
    """Result of the quality-scan stage."""

    commit_sha: str = ""
    project_key: str = ""
    organization: str = ""
    coverage_report: str = ""
    dashboard_url: str = ""
    scanner: str = ""
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProvisionResult:
    """
    Result of the provision stage.

    ``infrastructure_dirty`` is set when apply started but did not finish;
    nothing is rolled back.
    """

    commit_sha: str = ""
    working_dir: str = ""
    plan_summary: dict[str, int] = field(default_factory=dict)
    apply_started: bool = False
    applied: bool = False
    infrastructure_dirty: bool = False
    account_id: str = ""
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BuildResult:
    """Result of the build stage."""

    commit_sha: str = ""
    image: str = ""
    secret_mode: str = ""
    artifact: str | None = None
    archive_size_bytes: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DeployResult:
    """
    Result of the deploy stage.

    Output:
    - loaded_image: Reference reported by ``docker load``
    - pushed_references: Every registry reference pushed, ``latest`` first
    - digest: Manifest digest reported by the registry
    """

    registry: str = ""
    loaded_image: str = ""
    pushed_references: list[str] = field(default_factory=list)
    digest: str = ""
    errors: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def image_reference(self) -> str:
        return self.pushed_references[0] if self.pushed_references else ""

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineResult:
    """
    Outcome of a run, as returned by the API and the CLI.

    Contains all stage results and overall status. Stage results are stored
    under the stage name (``test``, ``quality_scan``, ...).
    """

    trace_id: str
    run_id: str
    status: str  # COMPLETED, FAILED
    test: TestResult | None = None
    quality_scan: ScanResult | None = None
    provision: ProvisionResult | None = None
    build: BuildResult | None = None
    deploy: DeployResult | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: float = 0.0
    stages_completed: list[str] = field(default_factory=list)
    stages_skipped: list[str] = field(default_factory=list)
    artifacts_discarded: int = 0
    image_reference: str = ""
    infrastructure_dirty: bool = False
    final_error: StageError | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "trace_id": self.trace_id,
            "run_id": self.run_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
            "stages_completed": self.stages_completed,
            "stages_skipped": self.stages_skipped,
            "artifacts_discarded": self.artifacts_discarded,
            "image_reference": self.image_reference,
            "infrastructure_dirty": self.infrastructure_dirty,
        }
        for stage in ("test", "quality_scan", "provision", "build", "deploy"):
            stage_result = getattr(self, stage)
            if stage_result:
                result[stage] = stage_result.to_dict()
        if self.final_error:
            result["final_error"] = self.final_error.to_dict()
        return result
