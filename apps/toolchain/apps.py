"""Django app configuration for the toolchain app."""

from django.apps import AppConfig


class ToolchainConfig(AppConfig):
    """Configuration for the external toolchain wrappers."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.toolchain"
    verbose_name = "Toolchain"
