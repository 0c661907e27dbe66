"""Cloud provider credentials for the provision and deploy stages."""

from __future__ import annotations

import json
from typing import Any

from apps.toolchain.tools.base import BaseTool


def aws_environment(secrets: dict[str, str]) -> dict[str, str]:
    """
    Map injected secrets to the variables AWS SDKs and terraform read.

    AWS_DEFAULT_REGION mirrors AWS_REGION for older tooling.
    """
    env = {
        "AWS_ACCESS_KEY_ID": secrets["AWS_ACCESS_KEY_ID"],
        "AWS_SECRET_ACCESS_KEY": secrets["AWS_SECRET_ACCESS_KEY"],
        "AWS_REGION": secrets["AWS_REGION"],
        "AWS_DEFAULT_REGION": secrets["AWS_REGION"],
    }
    if secrets.get("AWS_SESSION_TOKEN"):
        env["AWS_SESSION_TOKEN"] = secrets["AWS_SESSION_TOKEN"]
    return env


class AwsCliTool(BaseTool):
    """Optional credential check through the AWS CLI."""

    name = "aws"
    binary = "aws"

    def caller_identity(self) -> dict[str, Any]:
        """Return ``sts get-caller-identity`` (Account, Arn, UserId)."""
        result = self.run([self.binary, "sts", "get-caller-identity", "--output", "json"])
        return json.loads(result.stdout or "{}")
