"""
Management command to ship a commit through the pipeline end-to-end.

Usage:
    # Run the default branch
    python manage.py run_pipeline

    # Run a specific commit of a branch
    python manage.py run_pipeline --branch main --commit 3f2a9c1

    # Simulate a push touching some files (trigger rules apply)
    python manage.py run_pipeline --event push --changed-files README.md docs/index.md

    # Ignore trigger rules entirely
    python manage.py run_pipeline --branch hotfix --force

    # Dry run (show what would happen)
    python manage.py run_pipeline --dry-run
"""

import json

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.orchestration.models import TriggerEventType
from apps.orchestration.orchestrator import PipelineOrchestrator
from apps.triggers.drivers.base import ParsedEvent
from apps.triggers.rules import TriggerRule

STAGE_DESCRIPTIONS = [
    ("TEST", "test", "Check out, install requirements, run pytest with coverage"),
    ("QUALITY_SCAN", "quality_scan", "Run sonar-scanner with the coverage report"),
    ("PROVISION", "provision", "terraform init/plan/apply with AWS credentials"),
    ("BUILD", "build", "docker build and save the image archive"),
    ("DEPLOY", "deploy", "Load the archive, tag and push to the registry"),
]


class Command(BaseCommand):
    help = "Run the full pipeline: test → quality_scan → provision → build → deploy"

    def add_arguments(self, parser):
        parser.add_argument(
            "--branch",
            type=str,
            help="Branch to ship (default: PIPELINE_DEFAULT_BRANCH)",
        )
        parser.add_argument(
            "--commit",
            type=str,
            default="",
            help="Commit SHA (default: branch head)",
        )
        parser.add_argument(
            "--repository",
            type=str,
            default="",
            help="Repository URL or path (default: PIPELINE_SOURCE_REPOSITORY)",
        )
        parser.add_argument(
            "--event",
            type=str,
            choices=TriggerEventType.values,
            default=TriggerEventType.MANUAL,
            help="Event type to simulate (default: manual)",
        )
        parser.add_argument(
            "--changed-files",
            nargs="*",
            help="Files changed by the simulated event",
        )
        parser.add_argument(
            "--source",
            type=str,
            default="cli",
            help="Source system (default: cli)",
        )
        parser.add_argument(
            "--environment",
            type=str,
            help="Environment name (default: PIPELINE_ENVIRONMENT)",
        )
        parser.add_argument(
            "--trace-id",
            type=str,
            help="Custom trace ID for correlation",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Run even if trigger rules would skip the event",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would happen without executing",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output result as JSON",
        )

    def handle(self, *args, **options):
        event = ParsedEvent(
            event=options["event"],
            branch=options["branch"] or getattr(settings, "PIPELINE_DEFAULT_BRANCH", "main"),
            commit_sha=options["commit"],
            repository=options["repository"],
            changed_files=options["changed_files"],
            source=options["source"],
        )
        decision = TriggerRule.from_settings().evaluate(event, force=options["force"])

        if options["dry_run"]:
            self._show_dry_run(event, decision, options)
            return

        if not decision.should_run:
            self.stdout.write(self.style.WARNING(f"Pipeline not triggered: {decision.reason}"))
            return

        environment = options["environment"] or getattr(settings, "PIPELINE_ENVIRONMENT", "production")
        if not options["json"]:
            self.stdout.write(self.style.NOTICE("Starting pipeline..."))
            self.stdout.write(f"  Branch: {event.branch}")
            self.stdout.write(f"  Commit: {event.commit_sha or '(branch head)'}")
            self.stdout.write(f"  Environment: {environment}")
            self.stdout.write("")

        orchestrator = PipelineOrchestrator()
        try:
            result = orchestrator.run_pipeline(
                event=event,
                source=options["source"],
                trace_id=options.get("trace_id"),
                environment=environment,
            )
        except Exception as e:
            raise CommandError(f"Pipeline failed: {e}")

        if options["json"]:
            self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))
        else:
            self._display_result(result)

        if result.status != "COMPLETED":
            stage = result.final_error.stage if result.final_error else "unknown"
            raise CommandError(f"Pipeline failed at stage {stage}")

    def _show_dry_run(self, event: ParsedEvent, decision, options: dict):
        """Display what would happen in a dry run."""
        self.stdout.write(self.style.WARNING("=== DRY RUN ==="))
        self.stdout.write("")
        self.stdout.write("Event:")
        self.stdout.write(json.dumps(event.to_dict(), indent=2))
        self.stdout.write("")
        self.stdout.write("Trigger decision:")
        self.stdout.write(json.dumps(decision.to_dict(), indent=2))
        self.stdout.write("")
        self.stdout.write("Pipeline Stages:")
        for index, (label, _stage, description) in enumerate(STAGE_DESCRIPTIONS, start=1):
            self.stdout.write(f"  {index}. {label:<13}- {description}")
        self.stdout.write("")
        if decision.should_run:
            self.stdout.write(self.style.SUCCESS("Use without --dry-run to execute"))
        else:
            self.stdout.write(self.style.WARNING(f"Would not run: {decision.reason}"))

    def _display_result(self, result):
        """Display pipeline result in human-readable format."""
        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(self.style.HTTP_INFO("PIPELINE RESULT"))
        self.stdout.write("=" * 60)
        self.stdout.write("")

        if result.status == "COMPLETED":
            self.stdout.write(self.style.SUCCESS(f"Status: {result.status}"))
        else:
            self.stdout.write(self.style.ERROR(f"Status: {result.status}"))
        self.stdout.write(f"Trace ID: {result.trace_id}")
        self.stdout.write(f"Run ID: {result.run_id}")
        self.stdout.write(f"Duration: {result.total_duration_ms:.2f}ms")
        self.stdout.write("")

        for label, stage, _description in STAGE_DESCRIPTIONS:
            self.stdout.write(f"--- {label} ---")
            stage_result = getattr(result, stage)
            if stage_result is None:
                if stage in result.stages_skipped:
                    self.stdout.write(self.style.WARNING("  (skipped)"))
                else:
                    self.stdout.write(self.style.WARNING("  (not executed)"))
                self.stdout.write("")
                continue

            stage_dict = stage_result.to_dict()
            if stage == "test":
                self.stdout.write(f"  Commit: {stage_dict.get('commit_sha') or 'N/A'}")
                self.stdout.write(f"  Tests passed: {stage_dict.get('tests_passed')}")
                percent = stage_dict.get("coverage_percent")
                self.stdout.write(f"  Coverage: {f'{percent:.1f}%' if percent is not None else 'N/A'}")
            elif stage == "quality_scan":
                self.stdout.write(f"  Project: {stage_dict.get('project_key') or 'N/A'}")
                self.stdout.write(f"  Dashboard: {stage_dict.get('dashboard_url') or 'N/A'}")
            elif stage == "provision":
                summary = stage_dict.get("plan_summary") or {}
                self.stdout.write(
                    f"  Plan: {summary.get('add', 0)} to add, "
                    f"{summary.get('change', 0)} to change, "
                    f"{summary.get('destroy', 0)} to destroy"
                )
                self.stdout.write(f"  Applied: {stage_dict.get('applied')}")
                if stage_dict.get("infrastructure_dirty"):
                    self.stdout.write(self.style.ERROR("  Infrastructure may be partially applied"))
            elif stage == "build":
                self.stdout.write(f"  Image: {stage_dict.get('image') or 'N/A'}")
                self.stdout.write(f"  Archive: {stage_dict.get('archive_size_bytes', 0)} bytes")
            elif stage == "deploy":
                for reference in stage_dict.get("pushed_references", []):
                    self.stdout.write(f"  Pushed: {reference}")
                self.stdout.write(f"  Digest: {stage_dict.get('digest') or 'N/A'}")

            errors = stage_dict.get("errors", [])
            if errors:
                self.stdout.write(self.style.ERROR(f"  Errors: {errors}"))

            self.stdout.write(f"  Duration: {stage_dict.get('duration_ms', 0):.2f}ms")
            self.stdout.write("")

        if result.status == "COMPLETED":
            self.stdout.write(self.style.SUCCESS(f"✓ Deployed {result.image_reference}"))
            return

        self.stdout.write(self.style.ERROR(f"✗ Pipeline failed: {result.status}"))
        final_error = result.final_error
        if final_error:
            self.stdout.write(self.style.ERROR(f"  - {final_error.error_type}: {final_error.message}"))
        if result.infrastructure_dirty:
            self.stdout.write(
                self.style.ERROR("  Infrastructure is dirty; inspect terraform state before rerunning")
            )
