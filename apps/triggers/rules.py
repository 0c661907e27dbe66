"""
Trigger rules.

An event starts a pipeline when its type is enabled, it targets a matching
branch, and at least one changed file is outside the ignored paths.
Patterns are shell-style globs (``fnmatch``); ``*`` also matches ``/``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from django.conf import settings

from apps.triggers.drivers.base import EVENT_MANUAL, ParsedEvent

logger = logging.getLogger(__name__)


@dataclass
class TriggerDecision:
    """Outcome of evaluating an event against the trigger rules."""

    should_run: bool
    reason: str = ""
    # Changed files not covered by paths_ignore.
    relevant_files: list[str] | None = None

    def to_dict(self) -> dict:
        return {
            "should_run": self.should_run,
            "reason": self.reason,
            "relevant_files": self.relevant_files,
        }


@dataclass
class TriggerRule:
    """Which events, target branches and changed paths start a run."""

    events: list[str] = field(default_factory=lambda: ["push", "pull_request"])
    branches: list[str] = field(default_factory=lambda: ["main"])
    paths_ignore: list[str] = field(default_factory=lambda: ["README.md"])

    @classmethod
    def from_settings(cls) -> "TriggerRule":
        return cls(
            events=list(getattr(settings, "PIPELINE_TRIGGER_EVENTS", ["push", "pull_request"])),
            branches=list(getattr(settings, "PIPELINE_TRIGGER_BRANCHES", ["main"])),
            paths_ignore=list(getattr(settings, "PIPELINE_TRIGGER_PATHS_IGNORE", ["README.md"])),
        )

    def matches_branch(self, branch: str) -> bool:
        return any(fnmatchcase(branch, pattern) for pattern in self.branches)

    def is_ignored(self, path: str) -> bool:
        return any(fnmatchcase(path, pattern) for pattern in self.paths_ignore)

    def evaluate(self, event: ParsedEvent, force: bool = False) -> TriggerDecision:
        """
        Decide whether ``event`` starts a pipeline.

        Args:
            event: Normalized repository event.
            force: Skip every rule (manual runs from the CLI/API).
        """
        if force:
            return TriggerDecision(True, "forced", event.changed_files)

        if event.event == EVENT_MANUAL:
            # Manual runs only respect the branch filter.
            if not self.matches_branch(event.branch):
                return TriggerDecision(False, f"branch '{event.branch}' is not a release branch")
            return TriggerDecision(True, "manual run", event.changed_files)

        if event.event not in self.events:
            return TriggerDecision(False, f"event '{event.event}' does not trigger pipelines")

        if not self.matches_branch(event.branch):
            return TriggerDecision(False, f"branch '{event.branch}' is not a release branch")

        if event.changed_files is None:
            return TriggerDecision(True, "no changed-file information", None)

        relevant = [path for path in event.changed_files if not self.is_ignored(path)]
        if event.changed_files and not relevant:
            return TriggerDecision(False, "only ignored paths changed", [])

        return TriggerDecision(True, f"{event.event} to {event.branch}", relevant)
