"""
URL configuration for the triggers app.
"""

from django.urls import path

from apps.triggers.views import WebhookView

app_name = "triggers"

urlpatterns = [
    # Auto-detect driver
    path("webhook/", WebhookView.as_view(), name="webhook"),
    # Driver-specific webhooks
    path("webhook/<str:driver>/", WebhookView.as_view(), name="webhook_driver"),
]
