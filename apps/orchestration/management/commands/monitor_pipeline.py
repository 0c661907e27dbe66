"""
Management command to monitor pipeline runs and their statuses.

Usage:
    # List recent pipeline runs
    python manage.py monitor_pipeline --limit 10

    # Filter by status or branch
    python manage.py monitor_pipeline --status failed --branch main

    # Show details for a specific run
    python manage.py monitor_pipeline --run-id <run_id>
"""

from django.core.management.base import BaseCommand

from apps.orchestration.models import PipelineRun, PipelineStatus


class Command(BaseCommand):
    help = "Monitor pipeline runs: list, filter, and show details."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=10,
            help="Number of pipeline runs to show (default: 10)",
        )
        parser.add_argument(
            "--status",
            type=str,
            help=f"Filter by pipeline status ({', '.join(PipelineStatus.values)})",
        )
        parser.add_argument(
            "--branch",
            type=str,
            help="Filter by branch",
        )
        parser.add_argument(
            "--run-id",
            type=str,
            help="Show details for a specific pipeline run (by run_id)",
        )

    def handle(self, *args, **options):
        run_id = options.get("run_id")

        if run_id:
            self.show_run_details(run_id)
        else:
            self.list_runs(options.get("status"), options.get("branch"), options.get("limit"))

    def list_runs(self, status, branch, limit):
        qs = PipelineRun.objects.all()
        if status:
            qs = qs.filter(status__iexact=status)
        if branch:
            qs = qs.filter(branch=branch)
        qs = qs.order_by("-created_at")[:limit]

        if not qs:
            self.stdout.write(self.style.WARNING("No pipeline runs found."))
            return

        self.stdout.write(
            f"{'Run ID':<38} {'Status':<12} {'Branch':<16} {'Commit':<13} {'Created':<20} {'Duration(ms)':<12}"
        )
        self.stdout.write("-" * 114)
        for run in qs:
            self.stdout.write(
                f"{run.run_id:<38} {run.status:<12} {run.branch[:16]:<16} {run.commit_sha[:12]:<13} "
                f"{run.created_at:%Y-%m-%d %H:%M:%S} {run.total_duration_ms:<12.2f}"
            )

    def show_run_details(self, run_id):
        try:
            run = PipelineRun.objects.get(run_id=run_id)
        except PipelineRun.DoesNotExist:
            self.stdout.write(self.style.ERROR(f"Pipeline run not found: {run_id}"))
            return

        self.stdout.write(self.style.HTTP_INFO(f"Pipeline Run: {run.run_id}"))
        self.stdout.write(f"  Status: {run.status}")
        self.stdout.write(f"  Trace ID: {run.trace_id}")
        self.stdout.write(f"  Source: {run.source} ({run.event})")
        self.stdout.write(f"  Branch: {run.branch}")
        self.stdout.write(f"  Commit: {run.commit_sha or '-'}")
        self.stdout.write(f"  Environment: {run.environment}")
        self.stdout.write(f"  Created: {run.created_at:%Y-%m-%d %H:%M:%S}")
        self.stdout.write(f"  Started: {run.started_at}")
        self.stdout.write(f"  Completed: {run.completed_at}")
        self.stdout.write(f"  Duration: {run.total_duration_ms:.2f} ms")
        if run.image_reference:
            self.stdout.write(self.style.SUCCESS(f"  Image: {run.image_reference}"))
        if run.infrastructure_dirty:
            self.stdout.write(self.style.ERROR("  Infrastructure: DIRTY (partial apply)"))
        if run.last_error_message:
            self.stdout.write(self.style.ERROR(f"  Last error: {run.last_error_message}"))
        self.stdout.write("")
        self.stdout.write("Stage Executions:")
        for stage in run.stage_executions.all():
            self.stdout.write(
                f"  - {stage.stage:<13} {stage.status:<10} Duration: {stage.duration_ms:.2f} ms"
            )
            if stage.error_message:
                self.stdout.write(self.style.ERROR(f"      Error: {stage.error_message}"))
        self.stdout.write("")
        self.stdout.write("Artifacts:")
        artifacts = list(run.artifacts.all())
        if not artifacts:
            self.stdout.write("  (none)")
        for artifact in artifacts:
            if artifact.is_discarded:
                state = "discarded"
            elif artifact.is_consumed:
                state = f"consumed by {artifact.consumer_stage}"
            else:
                state = "available"
            self.stdout.write(
                f"  - {artifact.name:<24} from {artifact.producer_stage:<13} {artifact.size_bytes} bytes, {state}"
            )
        self.stdout.write("")
