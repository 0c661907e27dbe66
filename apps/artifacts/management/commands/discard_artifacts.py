"""
Management command to discard artifacts of finished pipeline runs.

Runs discard their artifacts on completion; this cleans up after a worker that
died mid-run and left files behind.

Usage:
    python manage.py discard_artifacts                  # Finished runs only
    python manage.py discard_artifacts --run-id <id>    # One specific run
    python manage.py discard_artifacts --dry-run        # Show what would be removed
"""

from django.core.management.base import BaseCommand, CommandError

from apps.artifacts.store import ArtifactStore
from apps.orchestration.models import PipelineRun


class Command(BaseCommand):
    help = "Discard stored artifacts of finished pipeline runs"

    def add_arguments(self, parser):
        parser.add_argument(
            "--run-id",
            type=str,
            help="Discard artifacts of this run, whatever its status.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List the runs that would be cleaned without deleting anything.",
        )

    def handle(self, *args, **options):
        store = ArtifactStore()

        if options["run_id"]:
            try:
                runs = [PipelineRun.objects.get(run_id=options["run_id"])]
            except PipelineRun.DoesNotExist:
                raise CommandError(f"Pipeline run not found: {options['run_id']}")
        else:
            runs = list(store.stale_runs())

        if not runs:
            self.stdout.write("No artifacts to discard.")
            return

        total = 0
        for run in runs:
            pending = run.artifacts.filter(discarded_at__isnull=True).count()
            if options["dry_run"]:
                self.stdout.write(f"Would discard {pending} artifact(s) of run {run.run_id}")
                continue
            discarded = store.discard_run(run)
            total += discarded
            self.stdout.write(f"Discarded {discarded} artifact(s) of run {run.run_id}")

        if not options["dry_run"]:
            self.stdout.write(self.style.SUCCESS(f"Total discarded: {total}"))
