"""Container image build, archive transfer and registry push."""

from __future__ import annotations

import re
from pathlib import Path

from apps.toolchain.runner import CommandResult
from apps.toolchain.tools.base import BaseTool

SECRET_MODE_MOUNT = "secret"
SECRET_MODE_BUILD_ARG = "build-arg"
SECRET_MODES = (SECRET_MODE_MOUNT, SECRET_MODE_BUILD_ARG)

_LOADED = re.compile(r"Loaded image(?: ID)?:\s*(?P<image>\S+)")
_DIGEST = re.compile(r"digest:\s*(?P<digest>sha256:[0-9a-f]{64})")


class DockerTool(BaseTool):
    """Wraps the docker CLI."""

    name = "docker"
    binary = "docker"

    def build(
        self,
        context: str | Path,
        tag: str,
        dockerfile: str = "Dockerfile",
        secret_name: str = "",
        secret_mode: str = SECRET_MODE_MOUNT,
    ) -> CommandResult:
        """
        Build an image.

        The secret value is always taken from the environment. With
        ``secret_mode="secret"`` it is exposed as a BuildKit secret mount
        (``RUN --mount=type=secret,id=<name>``) and never reaches image
        history; ``"build-arg"`` keeps the legacy ``ARG <name>`` contract.
        """
        if secret_mode not in SECRET_MODES:
            raise ValueError(f"Unknown build secret mode: {secret_mode}. Available: {SECRET_MODES}")

        args = [self.binary, "build", "-f", dockerfile, "-t", tag]
        env = self.env
        if secret_name:
            if secret_mode == SECRET_MODE_MOUNT:
                args += ["--secret", f"id={secret_name},env={secret_name}"]
                env = {**(self.env or {}), "DOCKER_BUILDKIT": "1"}
            else:
                # Name only: docker reads the value from the environment.
                args += ["--build-arg", secret_name]
        args.append(".")
        return self.run(args, cwd=context, env=env)

    def save(self, image: str, output: str | Path) -> CommandResult:
        return self.run([self.binary, "save", "-o", str(output), image])

    def load(self, archive: str | Path) -> str:
        """Load an archive and return the image reference docker reports."""
        result = self.run([self.binary, "load", "-i", str(archive)])
        match = _LOADED.search(result.stdout)
        return match.group("image") if match else ""

    def tag(self, source: str, target: str) -> CommandResult:
        return self.run([self.binary, "tag", source, target])

    def push(self, reference: str) -> str:
        """Push a reference and return the manifest digest, if reported."""
        result = self.run([self.binary, "push", reference])
        match = _DIGEST.search(result.stdout)
        return match.group("digest") if match else ""

    def login(self, registry: str, username: str, token: str) -> CommandResult:
        """Log in reading the token from stdin, never from argv."""
        return self.run(
            [self.binary, "login", registry, "--username", username, "--password-stdin"],
            stdin=token,
        )

    def logout(self, registry: str) -> CommandResult:
        return self.run([self.binary, "logout", registry], check=False)


def registry_repository(registry: str, namespace: str, image_name: str) -> str:
    """e.g. docker.io/<user>/ledschallenge"""
    return "/".join(part.strip("/") for part in (registry, namespace, image_name) if part)
