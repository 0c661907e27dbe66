"""Tests for monitoring signals."""

from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings

from apps.orchestration import signals
from apps.orchestration.signals import (
    LoggingBackend,
    SignalTags,
    StatsdBackend,
    emit_stage_failed,
    emit_stage_skipped,
    get_monitoring_backend,
)


def _tags(**overrides):
    data = {
        "trace_id": "trace-123",
        "run_id": "run-456",
        "stage": "deploy",
        "source": "github",
        "event": "push",
        "branch": "main",
        "commit_sha": "abc123",
    }
    data.update(overrides)
    return SignalTags(**data)


class SignalTagsTests(SimpleTestCase):
    def test_to_dict(self):
        data = _tags(extra={"custom": "value"}).to_dict()

        assert data["trace_id"] == "trace-123"
        assert data["stage"] == "deploy"
        assert data["commit_sha"] == "abc123"
        assert data["custom"] == "value"

    def test_for_stage_copies_everything_but_stage(self):
        base = _tags(stage="pipeline", extra={"k": "v"})
        tags = base.for_stage("build")

        assert tags.stage == "build"
        assert tags.branch == "main"
        assert tags.extra == {"k": "v"}
        assert tags.extra is not base.extra


class BackendSelectionTests(SimpleTestCase):
    def test_logging_by_default(self):
        assert isinstance(get_monitoring_backend(), LoggingBackend)

    @override_settings(ORCHESTRATION_METRICS_BACKEND="statsd", STATSD_PREFIX="ci")
    def test_statsd(self):
        backend = get_monitoring_backend()
        assert isinstance(backend, StatsdBackend)
        assert backend.prefix == "ci"


class StatsdBackendTests(SimpleTestCase):
    def setUp(self):
        self.backend = StatsdBackend()
        self.client = MagicMock()
        self.backend._client = self.client

    def test_counter(self):
        self.backend.emit("pipeline.stage.failure_count", _tags(), value=None)
        self.client.incr.assert_called_once_with("pipeline.stage.failure_count.deploy.github")

    def test_duration_is_timing(self):
        self.backend.emit("pipeline.stage.duration", _tags(), value=12.5)
        self.client.timing.assert_called_once_with("pipeline.stage.duration.deploy.github", 12.5)


class EmitTests(SimpleTestCase):
    def setUp(self):
        self.backend = MagicMock()
        patcher = patch.object(signals, "_backend", self.backend)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_failed_emits_event_duration_and_counter(self):
        emit_stage_failed(_tags(), "CommandFailedError", "push denied", 42.0)

        names = [call.args[0] for call in self.backend.emit.call_args_list]
        assert names == [
            "pipeline.stage.failed",
            "pipeline.stage.duration",
            "pipeline.stage.failure_count",
        ]
        assert self.backend.emit.call_args_list[0].kwargs["extra"]["error_type"] == "CommandFailedError"

    def test_skipped_carries_reason(self):
        emit_stage_skipped(_tags(), "upstream stage build failed")

        call = self.backend.emit.call_args
        assert call.args[0] == "pipeline.stage.skipped"
        assert call.kwargs["extra"] == {"reason": "upstream stage build failed"}
