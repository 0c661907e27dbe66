"""Base driver and data structures for repository events.

Drivers normalize incoming webhook payloads from different sources
(GitHub, generic JSON) into a common internal format.

Public API:
- ParsedEvent
- BaseEventDriver
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

EVENT_PUSH = "push"
EVENT_PULL_REQUEST = "pull_request"
EVENT_MANUAL = "manual"
KNOWN_EVENTS = (EVENT_PUSH, EVENT_PULL_REQUEST, EVENT_MANUAL)


class UnsupportedEventError(ValueError):
    """A well-formed delivery for an event that never starts a pipeline."""


@dataclass
class ParsedEvent:
    """Standardized repository event that all drivers produce."""

    event: str
    branch: str

    commit_sha: str = ""
    ref: str = ""
    repository: str = ""
    # None means the source did not say which files changed.
    changed_files: list[str] | None = None
    actor: str = ""
    source: str = ""
    raw_payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.event = (self.event or "").lower()
        self.branch = (self.branch or "").strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "branch": self.branch,
            "commit_sha": self.commit_sha,
            "ref": self.ref,
            "repository": self.repository,
            "changed_files": self.changed_files,
            "actor": self.actor,
            "source": self.source,
        }


class BaseEventDriver(ABC):
    """Abstract base class for event source drivers."""

    name: str = "base"

    @abstractmethod
    def validate(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> bool:
        """Validate that a payload is from this source and can be parsed."""

    @abstractmethod
    def parse(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> ParsedEvent:
        """Parse an incoming webhook payload into a ParsedEvent."""

    def verify_signature(self, body: bytes, headers: dict[str, str], secret: str) -> bool:
        """Check the request signature. Sources without signing accept everything."""
        return True


def branch_from_ref(ref: str) -> str:
    """``refs/heads/main`` -> ``main``; other refs are returned unchanged."""
    prefix = "refs/heads/"
    return ref[len(prefix):] if ref.startswith(prefix) else ref
