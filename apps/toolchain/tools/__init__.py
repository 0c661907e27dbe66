# Tool wrappers
from apps.toolchain.tools.aws import AwsCliTool, aws_environment
from apps.toolchain.tools.base import BaseTool
from apps.toolchain.tools.docker import DockerTool, registry_repository
from apps.toolchain.tools.git import GitTool
from apps.toolchain.tools.python import PythonTool, parse_coverage_report
from apps.toolchain.tools.sonar import SonarScanner
from apps.toolchain.tools.terraform import TerraformTool, parse_plan_summary

__all__ = [
    "BaseTool",
    "AwsCliTool",
    "DockerTool",
    "GitTool",
    "PythonTool",
    "SonarScanner",
    "TerraformTool",
    "aws_environment",
    "parse_coverage_report",
    "parse_plan_summary",
    "registry_repository",
    "get_tool",
    "TOOL_REGISTRY",
]

# Registry of available tools
TOOL_REGISTRY = {
    "git": GitTool,
    "python": PythonTool,
    "sonar-scanner": SonarScanner,
    "terraform": TerraformTool,
    "docker": DockerTool,
    "aws": AwsCliTool,
}

# Settings that override a tool's binary.
BINARY_SETTINGS = {
    "python": "PIPELINE_PYTHON",
    "terraform": "PIPELINE_TERRAFORM_BINARY",
    "docker": "PIPELINE_DOCKER_BINARY",
}


def get_tool(name: str, runner, env: dict[str, str] | None = None) -> BaseTool:
    """
    Instantiate a tool bound to a stage's runner and environment.

    The binary comes from settings when one is configured for the tool.

    Raises:
        KeyError: Unknown tool name.
    """
    from django.conf import settings

    if name not in TOOL_REGISTRY:
        raise KeyError(f"Unknown tool: {name}. Available: {list(TOOL_REGISTRY.keys())}")

    setting = BINARY_SETTINGS.get(name)
    binary = getattr(settings, setting, None) if setting else None
    return TOOL_REGISTRY[name](runner, env=env, binary=binary)
