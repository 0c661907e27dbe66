"""
GitHub webhook driver.

Handles ``push`` and ``pull_request`` deliveries.
See: https://docs.github.com/en/webhooks/webhook-events-and-payloads
"""

import hashlib
import hmac
import json
import logging
import urllib.error
import urllib.request
from typing import Any

from django.conf import settings

from apps.triggers.drivers.base import (
    EVENT_PULL_REQUEST,
    EVENT_PUSH,
    BaseEventDriver,
    ParsedEvent,
    UnsupportedEventError,
    branch_from_ref,
)

EVENT_HEADER = "X-GitHub-Event"
SIGNATURE_HEADER = "X-Hub-Signature-256"

logger = logging.getLogger(__name__)

# Pull request actions that change the code under review.
PULL_REQUEST_ACTIONS = ("opened", "synchronize", "reopened")

# The pull request files API returns at most 3000 files, 100 per page.
FILES_PER_PAGE = 100
MAX_FILE_PAGES = 30

NULL_SHA = "0" * 40


def _header(headers: dict[str, str] | None, name: str) -> str:
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return ""


class GitHubDriver(BaseEventDriver):
    """
    Driver for GitHub repository webhooks.

    push:
    {
        "ref": "refs/heads/main",
        "after": "<sha>",
        "repository": {"clone_url": "..."},
        "commits": [{"added": [...], "modified": [...], "removed": [...]}],
        "pusher": {"name": "..."}
    }

    pull_request:
    {
        "action": "opened",
        "number": 7,
        "pull_request": {"base": {"ref": "main"}, "head": {"sha": "<sha>"}},
        "repository": {"clone_url": "...", "full_name": "owner/repo"}
    }
    """

    name = "github"

    def _event_type(self, payload: dict[str, Any], headers: dict[str, str] | None) -> str:
        event = _header(headers, EVENT_HEADER)
        if event:
            return event
        if "pull_request" in payload:
            return EVENT_PULL_REQUEST
        if "ref" in payload and "commits" in payload:
            return EVENT_PUSH
        return ""

    def validate(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> bool:
        """Check if this looks like a GitHub payload."""
        if _header(headers, EVENT_HEADER):
            return True
        has_repository = isinstance(payload.get("repository"), dict)
        return has_repository and self._event_type(payload, headers) in (
            EVENT_PUSH,
            EVENT_PULL_REQUEST,
        )

    def parse(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> ParsedEvent:
        """Parse a GitHub webhook payload."""
        event = self._event_type(payload, headers)
        repository = payload.get("repository") or {}
        clone_url = repository.get("clone_url") or repository.get("html_url") or ""

        if event == EVENT_PUSH:
            return self._parse_push(payload, clone_url)
        if event == EVENT_PULL_REQUEST:
            return self._parse_pull_request(payload, clone_url)
        raise UnsupportedEventError(f"Unsupported GitHub event: {event or 'unknown'}")

    def _parse_push(self, payload: dict[str, Any], clone_url: str) -> ParsedEvent:
        ref = payload.get("ref", "")
        if not ref:
            raise ValueError("GitHub push payload has no ref")
        # A deleted branch has nothing to check out.
        if payload.get("deleted") or payload.get("after") == NULL_SHA:
            raise UnsupportedEventError(f"Deletion of {ref} does not trigger a pipeline")

        changed: list[str] | None = None
        commits = payload.get("commits")
        if commits:
            files: set[str] = set()
            for commit in commits:
                for key in ("added", "modified", "removed"):
                    files.update(commit.get(key) or [])
            changed = sorted(files)

        return ParsedEvent(
            event=EVENT_PUSH,
            branch=branch_from_ref(ref),
            ref=ref,
            commit_sha=payload.get("after", ""),
            repository=clone_url,
            changed_files=changed,
            actor=(payload.get("pusher") or {}).get("name", ""),
            source=self.name,
            raw_payload=payload,
        )

    def _parse_pull_request(self, payload: dict[str, Any], clone_url: str) -> ParsedEvent:
        action = payload.get("action", "")
        if action not in PULL_REQUEST_ACTIONS:
            raise UnsupportedEventError(f"Pull request action '{action}' does not trigger a pipeline")

        pr = payload.get("pull_request") or {}
        base = pr.get("base") or {}
        head = pr.get("head") or {}
        number = payload.get("number", pr.get("number", ""))
        full_name = (payload.get("repository") or {}).get("full_name", "")

        return ParsedEvent(
            event=EVENT_PULL_REQUEST,
            # Trigger rules match the branch the PR targets.
            branch=base.get("ref", ""),
            ref=f"refs/pull/{number}/head",
            commit_sha=head.get("sha", ""),
            repository=clone_url,
            changed_files=self.pull_request_files(full_name, number),
            actor=(pr.get("user") or {}).get("login", ""),
            source=self.name,
            raw_payload=payload,
        )

    def pull_request_files(self, full_name: str, number: Any) -> list[str] | None:
        """
        List the files a pull request touches via the REST API.

        Pull request webhooks carry no file list. Returns None when the
        repository or number is unknown or the API cannot be reached, which
        leaves path filtering out of the decision.
        """
        if not full_name or not number:
            return None

        api_url = getattr(settings, "GITHUB_API_URL", "https://api.github.com").rstrip("/")
        token = getattr(settings, "GITHUB_TOKEN", "")
        timeout = getattr(settings, "GITHUB_API_TIMEOUT", 10)
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        files: list[str] = []
        for page in range(1, MAX_FILE_PAGES + 1):
            url = f"{api_url}/repos/{full_name}/pulls/{number}/files?per_page={FILES_PER_PAGE}&page={page}"
            request = urllib.request.Request(url, headers=headers, method="GET")
            try:
                with urllib.request.urlopen(request, timeout=timeout) as response:
                    entries = json.loads(response.read().decode("utf-8"))
            except urllib.error.HTTPError as e:
                logger.warning("GitHub API error %s listing files of %s#%s", e.code, full_name, number)
                return None
            except (urllib.error.URLError, ValueError) as e:
                logger.warning("Could not list files of %s#%s: %s", full_name, number, e)
                return None

            files.extend(entry["filename"] for entry in entries if entry.get("filename"))
            if len(entries) < FILES_PER_PAGE:
                break

        return sorted(set(files))

    def verify_signature(self, body: bytes, headers: dict[str, str], secret: str) -> bool:
        """
        Verify ``X-Hub-Signature-256`` (HMAC-SHA256 of the raw body).

        With no secret configured, signatures are not checked.
        """
        if not secret:
            return True
        signature = _header(headers, SIGNATURE_HEADER)
        if not signature.startswith("sha256="):
            return False
        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(signature[len("sha256="):], expected)


def sign_payload(body: bytes, secret: str) -> str:
    """Signature header value GitHub would send for ``body``."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
