"""Django app configuration for the artifacts app."""

from django.apps import AppConfig


class ArtifactsConfig(AppConfig):
    """Configuration for run-scoped artifact storage."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.artifacts"
    verbose_name = "Pipeline Artifacts"
