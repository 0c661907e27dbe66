"""
Run and stage signals.

Every stage boundary produces a named signal tagged with the run it belongs
to, so a log search or a StatsD dashboard can follow one commit through
test, quality_scan, provision, build and deploy.

    pipeline.started / pipeline.completed / pipeline.duration
    pipeline.stage.started / succeeded / failed / skipped
    pipeline.stage.duration        (timing)
    pipeline.stage.failure_count   (counter)

The backend is chosen by ORCHESTRATION_METRICS_BACKEND ("logging" or "statsd").
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

import statsd
from django.conf import settings

logger = logging.getLogger("apps.orchestration.signals")

TIMING_SUFFIX = ".duration"


@dataclasses.dataclass
class SignalTags:
    trace_id: str
    run_id: str
    # One of the PipelineStage values, or "pipeline" for run-level signals.
    stage: str
    source: str = "unknown"
    event: str = ""
    branch: str = ""
    commit_sha: str = ""
    environment: str = "production"
    extra: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data.update(data.pop("extra"))
        return data

    def for_stage(self, stage: str) -> SignalTags:
        return dataclasses.replace(self, stage=stage, extra=dict(self.extra))


class MonitoringBackend:
    """Receives every signal. ``value`` is None for plain events and counters."""

    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        raise NotImplementedError


class LoggingBackend(MonitoringBackend):
    def emit(self, signal_name, tags, value=None, extra=None):
        payload = {"signal": signal_name, "value": value, **tags.to_dict(), **(extra or {})}
        logger.info(
            "[SIGNAL] %s",
            signal_name,
            extra={"trace_id": tags.trace_id, "run_id": tags.run_id, "signal_data": payload},
        )


class StatsdBackend(MonitoringBackend):
    """
    Sends ``<prefix>.<signal>.<stage>.<source>`` to StatsD.

    Signals ending in ``.duration`` become timings, other valued signals
    gauges, and the rest counters.
    """

    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = "pipeline"):
        self.host = host
        self.port = port
        self.prefix = prefix
        self._client: statsd.StatsClient | None = None

    @property
    def client(self) -> statsd.StatsClient:
        if self._client is None:
            self._client = statsd.StatsClient(self.host, self.port, prefix=self.prefix)
        return self._client

    def emit(self, signal_name, tags, value=None, extra=None):
        metric = ".".join((signal_name, tags.stage, tags.source))
        if value is None:
            self.client.incr(metric)
        elif signal_name.endswith(TIMING_SUFFIX):
            self.client.timing(metric, value)
        else:
            self.client.gauge(metric, value)


def get_monitoring_backend() -> MonitoringBackend:
    if getattr(settings, "ORCHESTRATION_METRICS_BACKEND", "logging") != "statsd":
        return LoggingBackend()
    return StatsdBackend(
        host=getattr(settings, "STATSD_HOST", "localhost"),
        port=int(getattr(settings, "STATSD_PORT", 8125)),
        prefix=getattr(settings, "STATSD_PREFIX", "pipeline"),
    )


_backend: MonitoringBackend | None = None


def _emit(signal_name: str, tags: SignalTags, value: float | None = None, **extra: Any) -> None:
    global _backend
    if _backend is None:
        _backend = get_monitoring_backend()
    _backend.emit(signal_name, tags, value=value, extra=extra or None)


def emit_pipeline_started(tags: SignalTags) -> None:
    _emit("pipeline.started", tags)


def emit_pipeline_completed(tags: SignalTags, duration_ms: float, status: str) -> None:
    """``status`` is the PipelineResult status (COMPLETED or FAILED)."""
    _emit("pipeline.completed", tags, duration_ms=duration_ms, final_status=status)
    _emit("pipeline.duration", tags, value=duration_ms)


def emit_stage_started(tags: SignalTags) -> None:
    _emit("pipeline.stage.started", tags)


def emit_stage_succeeded(tags: SignalTags, duration_ms: float) -> None:
    _emit("pipeline.stage.succeeded", tags, duration_ms=duration_ms)
    _emit("pipeline.stage.duration", tags, value=duration_ms)


def emit_stage_failed(tags: SignalTags, error_type: str, error_message: str, duration_ms: float) -> None:
    _emit(
        "pipeline.stage.failed",
        tags,
        error_type=error_type,
        error_message=error_message,
        duration_ms=duration_ms,
    )
    _emit("pipeline.stage.duration", tags, value=duration_ms)
    _emit("pipeline.stage.failure_count", tags)


def emit_stage_skipped(tags: SignalTags, reason: str) -> None:
    """The stage never ran because an earlier stage failed."""
    _emit("pipeline.stage.skipped", tags, reason=reason)
