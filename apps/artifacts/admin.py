"""Admin configuration for artifact records."""

from django.contrib import admin
from django.utils.html import format_html

from apps.artifacts.models import Artifact


@admin.register(Artifact)
class ArtifactAdmin(admin.ModelAdmin):
    """Read-only audit view of stage artifacts."""

    list_display = [
        "name",
        "pipeline_run",
        "producer_stage",
        "consumer_stage",
        "size_bytes",
        "state_badge",
        "uploaded_at",
    ]
    list_filter = ["producer_stage", "consumer_stage", "name"]
    search_fields = ["name", "pipeline_run__run_id", "sha256"]
    readonly_fields = [
        "pipeline_run",
        "name",
        "producer_stage",
        "filename",
        "storage_path",
        "size_bytes",
        "sha256",
        "uploaded_at",
        "consumed_at",
        "consumer_stage",
        "discarded_at",
    ]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("pipeline_run")

    def has_add_permission(self, request):
        return False

    @admin.display(description="State")
    def state_badge(self, obj):
        if obj.is_discarded:
            color, label = "#999", "discarded"
        elif obj.is_consumed:
            color, label = "#28a745", "consumed"
        else:
            color, label = "#ffc107", "stored"
        return format_html('<span style="color:{};font-weight:bold;">{}</span>', color, label)
