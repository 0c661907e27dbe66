"""Custom Django admin app configuration."""

from django.contrib.admin.apps import AdminConfig


class PipelineAdminConfig(AdminConfig):
    default_site = "config.admin.PipelineAdminSite"
