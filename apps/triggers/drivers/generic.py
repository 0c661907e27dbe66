"""
Generic event driver.

Accepts a minimal JSON payload from any CI bridge or script:
{
    "event": "push",
    "branch": "main",
    "commit_sha": "abc123",
    "repository": "https://github.com/org/repo.git",
    "changed_files": ["api/app.py"]
}
"""

from typing import Any

from apps.triggers.drivers.base import KNOWN_EVENTS, BaseEventDriver, ParsedEvent, branch_from_ref


class GenericEventDriver(BaseEventDriver):
    """Driver for plain JSON events."""

    name = "generic"

    def validate(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> bool:
        return isinstance(payload, dict) and bool(payload.get("branch") or payload.get("ref"))

    def parse(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> ParsedEvent:
        if not self.validate(payload):
            raise ValueError("Generic event requires 'branch' or 'ref'")

        event = (payload.get("event") or "push").lower()
        if event not in KNOWN_EVENTS:
            raise ValueError(f"Unknown event type: {event}. Available: {', '.join(KNOWN_EVENTS)}")

        changed = payload.get("changed_files")
        if changed is not None and not isinstance(changed, list):
            raise ValueError("'changed_files' must be a list")

        ref = payload.get("ref", "")
        return ParsedEvent(
            event=event,
            branch=payload.get("branch") or branch_from_ref(ref),
            ref=ref,
            commit_sha=payload.get("commit_sha", ""),
            repository=payload.get("repository", ""),
            changed_files=[str(f) for f in changed] if changed is not None else None,
            actor=payload.get("actor", ""),
            source=self.name,
            raw_payload=payload,
        )
