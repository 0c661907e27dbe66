"""
Stage-scoped secret resolution.

Secrets are injected into the worker's environment by an external secret
store (or a local .env file). Each stage only ever sees the names listed for
it in STAGE_SECRETS.
"""

from __future__ import annotations

import os
from typing import Mapping

from django.conf import settings

from apps.toolchain.exceptions import MissingSecretError

AWS_SECRETS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION")
REGISTRY_SECRETS = ("DOCKER_USERNAME", "DOCKER_TOKEN")

STAGE_SECRETS: dict[str, tuple[str, ...]] = {
    "test": ("DATABASE_URL",),
    "quality_scan": ("SONAR_TOKEN",),
    "provision": AWS_SECRETS,
    "build": ("DATABASE_URL",),
    "deploy": AWS_SECRETS + REGISTRY_SECRETS,
}


def required_secrets(stage: str) -> tuple[str, ...]:
    """Names of the secrets a stage needs."""
    if stage == "build":
        return (getattr(settings, "PIPELINE_BUILD_SECRET_NAME", "DATABASE_URL"),)
    return STAGE_SECRETS.get(stage, ())


class SecretStore:
    """
    Read-only view over injected secrets.

    Usage:
        store = SecretStore()
        secrets = store.for_stage("deploy")  # {"DOCKER_USERNAME": ..., ...}
    """

    def __init__(self, source: Mapping[str, str] | None = None):
        self._source = source if source is not None else os.environ

    def get(self, name: str) -> str:
        value = self._source.get(name, "")
        if not value:
            raise MissingSecretError([name])
        return value

    def for_stage(self, stage: str) -> dict[str, str]:
        """
        Resolve every secret scoped to ``stage``.

        Raises:
            MissingSecretError: listing all absent (or empty) names at once.
        """
        names = required_secrets(stage)
        missing = [name for name in names if not self._source.get(name)]
        if missing:
            raise MissingSecretError(missing, stage=stage)
        return {name: self._source[name] for name in names}
