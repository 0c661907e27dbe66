"""Django app configuration for the triggers app."""

from django.apps import AppConfig


class TriggersConfig(AppConfig):
    """Configuration for repository event triggers."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.triggers"
    verbose_name = "Pipeline Triggers"
