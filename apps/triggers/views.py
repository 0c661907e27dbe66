"""
Webhook views for receiving repository events.
"""

import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.orchestration.dispatch import dispatch_run
from apps.orchestration.orchestrator import PipelineOrchestrator
from apps.triggers.drivers import UnsupportedEventError, detect_driver, get_driver
from apps.triggers.drivers.github import EVENT_HEADER
from apps.triggers.rules import TriggerRule

logger = logging.getLogger(__name__)


def _webhook_secret(driver_name: str) -> str:
    if driver_name == "github":
        return getattr(settings, "GITHUB_WEBHOOK_SECRET", "")
    return ""


@method_decorator(csrf_exempt, name="dispatch")
class WebhookView(View):
    """
    Webhook endpoint for repository events.

    POST /triggers/webhook/
    POST /triggers/webhook/<driver>/

    The driver is auto-detected unless given in the URL. Events that pass the
    trigger rules create a pipeline run which is queued for a worker.
    """

    def post(self, request, driver=None):
        """Handle an incoming repository event."""
        try:
            payload = json.loads(request.body)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON payload: {e}")
            return JsonResponse(
                {"status": "error", "message": "Invalid JSON payload"},
                status=400,
            )
        if not isinstance(payload, dict):
            return JsonResponse(
                {"status": "error", "message": "Payload must be a JSON object"},
                status=400,
            )

        headers = dict(request.headers)

        if driver:
            try:
                event_driver = get_driver(driver)
            except ValueError as e:
                return JsonResponse({"status": "error", "message": str(e)}, status=400)
        else:
            event_driver = detect_driver(payload, headers)
            if event_driver is None:
                return JsonResponse(
                    {"status": "error", "message": "Could not detect event source"},
                    status=400,
                )

        if not event_driver.verify_signature(request.body, headers, _webhook_secret(event_driver.name)):
            logger.warning("Rejected %s webhook with invalid signature", event_driver.name)
            return JsonResponse({"status": "error", "message": "Invalid signature"}, status=401)

        if request.headers.get(EVENT_HEADER) == "ping":
            return JsonResponse({"status": "ok", "message": "pong"})

        try:
            event = event_driver.parse(payload, headers)
        except UnsupportedEventError as e:
            return JsonResponse({"status": "ignored", "reason": str(e)})
        except ValueError as e:
            logger.warning(f"Unparseable {event_driver.name} payload: {e}")
            return JsonResponse({"status": "error", "message": str(e)}, status=400)

        decision = TriggerRule.from_settings().evaluate(event)
        if not decision.should_run:
            logger.info(
                "Event ignored: %s",
                decision.reason,
                extra={"source": event.source, "branch": event.branch},
            )
            return JsonResponse({"status": "ignored", "reason": decision.reason})

        pipeline_run = PipelineOrchestrator().start_pipeline(event=event, source=event_driver.name)
        try:
            queued, data = dispatch_run(pipeline_run)
        except Exception as e:
            logger.exception(
                "Unexpected error running pipeline",
                extra={"trace_id": pipeline_run.trace_id, "run_id": pipeline_run.run_id},
            )
            return JsonResponse({"status": "error", "message": str(e)}, status=500)

        if queued:
            return JsonResponse(
                {
                    "status": "queued",
                    "trace_id": pipeline_run.trace_id,
                    "run_id": pipeline_run.run_id,
                    "task_id": data["task_id"],
                },
                status=202,
            )
        return JsonResponse({"status": data["status"].lower(), "pipeline": data})

    def get(self, request, driver=None):
        """Health check endpoint."""
        return JsonResponse(
            {
                "status": "ok",
                "message": "Webhook endpoint is ready",
                "driver": driver or "auto-detect",
            }
        )
