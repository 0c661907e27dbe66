from django.db import migrations, models
import django.db.models.deletion

STAGE_CHOICES = [
    ("test", "Test"),
    ("quality_scan", "Quality Scan"),
    ("provision", "Provision"),
    ("build", "Build"),
    ("deploy", "Deploy"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orchestration", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Artifact",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(help_text="e.g. coverage-report", max_length=128)),
                ("producer_stage", models.CharField(choices=STAGE_CHOICES, max_length=20)),
                ("filename", models.CharField(max_length=255)),
                ("storage_path", models.CharField(max_length=1024)),
                ("size_bytes", models.BigIntegerField(default=0)),
                ("sha256", models.CharField(max_length=64)),
                ("uploaded_at", models.DateTimeField(auto_now_add=True)),
                ("consumed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "consumer_stage",
                    models.CharField(
                        blank=True, choices=STAGE_CHOICES, default="", max_length=20
                    ),
                ),
                ("discarded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "pipeline_run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="artifacts",
                        to="orchestration.pipelinerun",
                    ),
                ),
            ],
            options={
                "ordering": ["pipeline_run", "uploaded_at"],
                "indexes": [
                    models.Index(fields=["discarded_at"], name="artifacts_a_discard_2a6f1c_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("pipeline_run", "name"), name="unique_artifact_per_run"
                    )
                ],
            },
        ),
    ]
