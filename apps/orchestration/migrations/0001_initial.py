from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PipelineRun",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "trace_id",
                    models.CharField(
                        db_index=True,
                        help_text="Shared by every log line, signal and artifact of the run.",
                        max_length=64,
                    ),
                ),
                (
                    "run_id",
                    models.CharField(
                        db_index=True,
                        help_text="Identifies this run in the API, the admin and artifact paths.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("tested", "Tested"),
                            ("scanned", "Scanned"),
                            ("provisioned", "Provisioned"),
                            ("built", "Built"),
                            ("deployed", "Deployed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "current_stage",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("test", "Test"),
                            ("quality_scan", "Quality Scan"),
                            ("provision", "Provision"),
                            ("build", "Build"),
                            ("deploy", "Deploy"),
                        ],
                        help_text="Stage in progress, or the last one attempted.",
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        db_index=True,
                        default="unknown",
                        help_text="Trigger source (e.g., 'github', 'generic', 'cli', 'api').",
                        max_length=100,
                    ),
                ),
                (
                    "event",
                    models.CharField(
                        choices=[
                            ("push", "Push"),
                            ("pull_request", "Pull request"),
                            ("manual", "Manual"),
                        ],
                        default="manual",
                        max_length=20,
                    ),
                ),
                (
                    "branch",
                    models.CharField(blank=True, db_index=True, default="", max_length=255),
                ),
                (
                    "commit_sha",
                    models.CharField(blank=True, db_index=True, default="", max_length=64),
                ),
                (
                    "repository",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Clone URL or path of the repository being shipped.",
                        max_length=500,
                    ),
                ),
                (
                    "environment",
                    models.CharField(
                        default="production",
                        help_text="Deployment target name, e.g. 'production'.",
                        max_length=50,
                    ),
                ),
                (
                    "image_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Registry reference of the image pushed by the deploy stage.",
                        max_length=500,
                    ),
                ),
                (
                    "infrastructure_dirty",
                    models.BooleanField(
                        default=False,
                        help_text="Infrastructure apply failed after starting; state may be partially applied.",
                    ),
                ),
                ("last_error_type", models.CharField(blank=True, default="", max_length=255)),
                ("last_error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "started_at",
                    models.DateTimeField(
                        blank=True, help_text="Set when the first stage begins.", null=True
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Set when the run is deployed or fails.",
                        null=True,
                    ),
                ),
                (
                    "total_duration_ms",
                    models.FloatField(
                        default=0.0,
                        help_text="Wall time from first stage start to completion, in ms.",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["trace_id", "run_id"], name="orchestrati_trace_i_5b1c0e_idx"
                    ),
                    models.Index(
                        fields=["status", "created_at"], name="orchestrati_status_8d2f4a_idx"
                    ),
                    models.Index(
                        fields=["branch", "commit_sha"], name="orchestrati_branch_3e7a91_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="StageExecution",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "stage",
                    models.CharField(
                        choices=[
                            ("test", "Test"),
                            ("quality_scan", "Quality Scan"),
                            ("provision", "Provision"),
                            ("build", "Build"),
                            ("deploy", "Deploy"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("running", "Running"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("skipped", "Skipped"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "workspace",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Ephemeral workspace directory used by this stage (removed afterwards).",
                        max_length=500,
                    ),
                ),
                (
                    "output_snapshot",
                    models.JSONField(
                        blank=True, default=dict, help_text="Stage result as stored for the dashboard, secrets redacted."
                    ),
                ),
                (
                    "log_excerpt",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Tail of the tool output (secrets redacted).",
                    ),
                ),
                ("error_type", models.CharField(blank=True, default="", max_length=255)),
                ("error_message", models.TextField(blank=True, default="")),
                ("error_stack", models.TextField(blank=True, default="")),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "duration_ms",
                    models.FloatField(
                        default=0.0, help_text="Wall time of the stage, in ms."
                    ),
                ),
                (
                    "pipeline_run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stage_executions",
                        to="orchestration.pipelinerun",
                    ),
                ),
            ],
            options={
                "ordering": ["pipeline_run", "id"],
                "indexes": [
                    models.Index(
                        fields=["pipeline_run", "stage"], name="orchestrati_pipelin_4c9d2b_idx"
                    ),
                    models.Index(
                        fields=["stage", "status"], name="orchestrati_stage_7f1e3d_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("pipeline_run", "stage"), name="unique_stage_per_run"
                    )
                ],
            },
        ),
    ]
