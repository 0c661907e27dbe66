"""Environment variable loading helpers.

Pipeline secrets and settings come from the process environment. Locally they
can be supplied through dotenv-style files.

Load order (first found wins; existing process env vars are never overridden):
- .env
- .env.dev (only when DJANGO_ENV=dev)

On a build host, prefer real environment variables injected by the secret store.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


def _should_load_dev_env() -> bool:
    return os.environ.get("DJANGO_ENV", "").lower() in {"dev", "development", "local"}


def load_env(base_dir: Path | None = None) -> None:
    """Load .env files into process environment.

    Safe to call multiple times.

    Args:
        base_dir: Project root directory. Defaults to config/.. (the directory
            holding manage.py).
    """

    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    load_dotenv(base_dir / ".env", override=False)

    if _should_load_dev_env():
        load_dotenv(base_dir / ".env.dev", override=False)


def env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag such as PIPELINE_IMMUTABLE_TAGS=1."""
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


def env_list(name: str, default: list[str]) -> list[str]:
    """Read a comma-separated list, e.g. PIPELINE_TRIGGER_BRANCHES=main,release/*."""
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]
